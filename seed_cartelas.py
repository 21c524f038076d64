import argparse
import logging

from application.cartelas import seed_cartelas
from config import load_settings
from http_main import build_repositories

logging.basicConfig(
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    level=logging.INFO
)
logger = logging.getLogger(__name__)


def main() -> None:
    parser = argparse.ArgumentParser(description="Insert freshly generated 75-ball cartelas.")
    parser.add_argument("count", type=int, help="number of cartelas to create")
    args = parser.parse_args()

    if args.count < 1:
        parser.error("count must be at least 1")

    _, cartela_repo, _ = build_repositories(load_settings())
    created = seed_cartelas(args.count, cartela_repo)
    logger.info(f"Created cartelas {created[0].id}-{created[-1].id}")


if __name__ == "__main__":
    main()

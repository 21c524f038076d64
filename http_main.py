import logging

from config import Settings, load_settings
from infrastructure.security.passwords import BcryptPasswordHasher
from infrastructure.security.tokens import JwtTokenIssuer
from interfaces.http.app import Services, create_http_app

logging.basicConfig(
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    level=logging.INFO
)
logger = logging.getLogger(__name__)


def build_repositories(settings: Settings):
    """
    Return (user_repo, cartela_repo, game_repo) for the configured store.

    `DATABASE_URL` selects Postgres; otherwise a SQLite file at `DB_PATH`
    is used. Users are set up first because games reference them.
    """

    if settings.database_url:
        from infrastructure.db.cartela_repository_postgres import PostgresCartelaRepository
        from infrastructure.db.game_repository_postgres import PostgresGameRepository
        from infrastructure.db.postgres_pool import PostgresPool
        from infrastructure.db.user_repository_postgres import PostgresUserRepository

        pool = PostgresPool(settings.database_url, settings.db_pool_min, settings.db_pool_max)
        user_repo = PostgresUserRepository(pool)
        game_repo = PostgresGameRepository(pool)
        cartela_repo = PostgresCartelaRepository(pool)
        return user_repo, cartela_repo, game_repo

    from infrastructure.db.cartela_repository_sqlite import SqliteCartelaRepository
    from infrastructure.db.game_repository_sqlite import SqliteGameRepository
    from infrastructure.db.user_repository_sqlite import SqliteUserRepository

    logger.info(f"Using SQLite database at {settings.db_path}")
    user_repo = SqliteUserRepository(settings.db_path)
    game_repo = SqliteGameRepository(settings.db_path)
    cartela_repo = SqliteCartelaRepository(settings.db_path)
    return user_repo, cartela_repo, game_repo


def build_app(settings: Settings):
    user_repo, cartela_repo, game_repo = build_repositories(settings)
    services = Services(
        user_repo=user_repo,
        cartela_repo=cartela_repo,
        game_repo=game_repo,
        hasher=BcryptPasswordHasher(settings.bcrypt_rounds),
        tokens=JwtTokenIssuer(settings.jwt_secret, settings.token_ttl),
    )
    return create_http_app(services, settings.allowed_origin)


def main() -> None:
    settings = load_settings()
    app = build_app(settings)
    logger.info(f"Server running on port {settings.port}")
    app.run(host="0.0.0.0", port=settings.port)


if __name__ == "__main__":
    main()

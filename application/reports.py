from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List

from domain.models import STATUS_COMPLETED, AgentGame
from domain.repositories import GameRepository


@dataclass
class ReportLine:
    game_id: int
    date: str
    players: int
    pot: float
    winner_money: float
    profit: float


@dataclass
class AgentSection:
    """All settled games of one agent, with the agent's profit subtotal."""

    agent_id: int
    agent_name: str
    agent_phone: str
    lines: List[ReportLine] = field(default_factory=list)
    subtotal: float = 0


@dataclass
class OwnerReport:
    sections: List[AgentSection] = field(default_factory=list)
    grand_total: float = 0

    def to_dict(self) -> dict:
        return {
            "sections": [
                {
                    "agent_id": s.agent_id,
                    "agent_name": s.agent_name,
                    "agent_phone": s.agent_phone,
                    "games": [line.__dict__ for line in s.lines],
                    "subtotal": s.subtotal,
                }
                for s in self.sections
            ],
            "grand_total": self.grand_total,
        }


def build_owner_report(rows: List[AgentGame]) -> OwnerReport:
    """
    Group games by agent and total their profit.

    Sections are keyed by agent ID, so two agents sharing a display name
    stay separate. `rows` is expected in agent-name then newest-first
    order, which the sections and lines keep.
    """

    report = OwnerReport()
    by_agent: Dict[int, AgentSection] = {}

    for row in rows:
        game = row.game
        section = by_agent.get(game.agent_id)
        if section is None:
            section = AgentSection(
                agent_id=game.agent_id,
                agent_name=row.agent_name,
                agent_phone=row.agent_phone,
            )
            by_agent[game.agent_id] = section
            report.sections.append(section)

        section.lines.append(
            ReportLine(
                game_id=game.id,
                date=game.created_at.strftime("%Y-%m-%d") if game.created_at else "",
                players=game.players,
                pot=game.pot,
                winner_money=game.winner_money,
                profit=game.profit,
            )
        )
        section.subtotal += game.profit
        report.grand_total += game.profit

    return report


def owner_report(game_repo: GameRepository) -> OwnerReport:
    """Build the owner's profit report over every completed game."""

    return build_owner_report(game_repo.list_with_agents(status=STATUS_COMPLETED))

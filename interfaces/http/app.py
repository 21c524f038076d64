from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from flask import Flask, g, jsonify, request, send_file
from flask_cors import CORS
from werkzeug.exceptions import HTTPException

from application import accounts, cartelas, games, reports
from domain.errors import BadRequest, BingoError, InternalError
from domain.models import ROLE_AGENT, ROLE_OWNER
from domain.repositories import CartelaRepository, GameRepository, UserRepository
from domain.security import PasswordHasher, TokenIssuer
from infrastructure.reporting.pdf_report import render_owner_report
from interfaces.http.gateway import ANY_ROLE, AccessGateway

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Collaborators the HTTP layer hands to the application functions."""

    user_repo: UserRepository
    cartela_repo: CartelaRepository
    game_repo: GameRepository
    hasher: PasswordHasher
    tokens: TokenIssuer


def _body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise BadRequest("Request body must be a JSON object.")
    return data


def create_http_app(services: Services, allowed_origin: str = "*") -> Flask:
    """
    Configure and return a Flask app wired to the application layer.

    This module contains only HTTP concerns: parsing requests, declaring
    the role each route requires and mapping results and errors to JSON.
    """

    app = Flask(__name__)
    CORS(app, origins=allowed_origin)
    gateway = AccessGateway(services.tokens, services.user_repo)

    @app.errorhandler(BingoError)
    def handle_bingo_error(exc: BingoError):
        if isinstance(exc, InternalError):
            logger.error(f"{request.method} {request.path} failed: {exc.message}", exc_info=exc)
        return jsonify({"success": False, "error": exc.to_dict()}), exc.status_code

    @app.errorhandler(Exception)
    def handle_unexpected(exc: Exception):
        if isinstance(exc, HTTPException):
            error = {"category": exc.name.replace(" ", ""), "message": exc.description}
            return jsonify({"success": False, "error": error}), exc.code

        logger.error(f"Unexpected error in {request.method} {request.path}: {exc}", exc_info=True)
        error = InternalError("Unexpected server error.")
        return jsonify({"success": False, "error": error.to_dict()}), error.status_code

    @app.get("/")
    def index():
        return "Bingo backend is running."

    # ==================== ACCOUNTS ====================

    @app.post("/owner")
    def register_owner():
        data = _body()
        owner = accounts.create_owner(
            data.get("phone"),
            data.get("password"),
            data.get("name", ""),
            services.user_repo,
            services.hasher,
        )
        return jsonify({"success": True, "user": owner.public_profile()}), 201

    @app.post("/login")
    def login():
        data = _body()
        result = accounts.authenticate(
            data.get("phone"),
            data.get("password"),
            services.user_repo,
            services.hasher,
            services.tokens,
        )
        return jsonify({"success": True, **result.to_dict()})

    @app.post("/agents")
    @gateway.requires(ROLE_OWNER)
    def register_agent():
        data = _body()
        agent = accounts.create_agent(
            data.get("phone"),
            data.get("password"),
            data.get("name", ""),
            services.user_repo,
            services.hasher,
        )
        return jsonify({"success": True, "user": agent.public_profile()}), 201

    @app.get("/agents")
    @gateway.requires(ROLE_OWNER)
    def list_agents():
        agents = accounts.list_agents(services.user_repo)
        return jsonify({"success": True, "agents": [a.public_profile() for a in agents]})

    @app.post("/agents/<int:agent_id>/toggle")
    @gateway.requires(ROLE_OWNER)
    def toggle_agent(agent_id: int):
        agent = accounts.toggle_agent(agent_id, services.user_repo)
        return jsonify({"success": True, "user": agent.public_profile()})

    @app.delete("/agents/<int:agent_id>")
    @gateway.requires(ROLE_OWNER)
    def delete_agent(agent_id: int):
        removed = accounts.delete_agent(agent_id, services.user_repo)
        return jsonify({"success": True, "deletedGames": removed})

    # ==================== GAMES ====================

    @app.post("/games")
    @gateway.requires(ROLE_AGENT)
    def create_game():
        game = games.create_game(
            g.identity.id, _body(), services.user_repo, services.game_repo
        )
        return jsonify({"success": True, "game": game.to_dict()}), 201

    @app.get("/games/my-history")
    @gateway.requires(ROLE_AGENT)
    def my_history():
        history = games.my_history(g.identity.id, services.game_repo)
        return jsonify({"success": True, "games": [game.to_dict() for game in history]})

    @app.get("/games")
    @gateway.requires(ROLE_OWNER)
    def all_games():
        rows = games.all_games(services.game_repo)
        return jsonify({"success": True, "games": [row.to_dict() for row in rows]})

    @app.get("/games/<int:game_id>")
    @gateway.requires(ANY_ROLE)
    def get_game(game_id: int):
        game = games.get_game(game_id, services.game_repo, g.identity)
        return jsonify({"success": True, "game": game.to_dict()})

    @app.get("/games/<int:game_id>/cartelas")
    @gateway.requires(ANY_ROLE)
    def game_cartelas(game_id: int):
        cards = cartelas.cartelas_for_game(
            game_id, services.game_repo, services.cartela_repo, g.identity
        )
        return jsonify({"success": True, "cartelas": [card.to_dict() for card in cards]})

    @app.post("/games/<int:game_id>/called")
    @gateway.requires(ROLE_AGENT)
    def record_called(game_id: int):
        game = games.record_called_numbers(
            game_id, _body().get("numbers"), services.game_repo, g.identity
        )
        return jsonify({"success": True, "game": game.to_dict()})

    @app.post("/games/<int:game_id>/end")
    @gateway.requires(ROLE_AGENT)
    def end_game(game_id: int):
        data = _body()
        winner_money = data.get("winnerMoney", data.get("winnermoney"))
        game = games.end_game(game_id, winner_money, services.game_repo, g.identity)
        return jsonify({"success": True, "game": game.to_dict()})

    @app.post("/games/<int:game_id>/cancel")
    @gateway.requires(ROLE_AGENT)
    def cancel_game(game_id: int):
        game = games.cancel_game(game_id, services.game_repo, g.identity)
        return jsonify({"success": True, "game": game.to_dict()})

    # ==================== CARTELAS & REPORTS ====================

    @app.get("/cartelas/available")
    @gateway.requires(ROLE_AGENT)
    def available_cartelas():
        cards = cartelas.list_available(services.cartela_repo)
        return jsonify({"success": True, "cartelas": [card.to_dict() for card in cards]})

    @app.get("/reports/owner")
    @gateway.requires(ROLE_OWNER)
    def owner_report():
        report = reports.owner_report(services.game_repo)
        if request.args.get("format") == "json":
            return jsonify({"success": True, "report": report.to_dict()})

        now = datetime.now()
        return send_file(
            render_owner_report(report, now),
            mimetype="application/pdf",
            as_attachment=True,
            download_name=f"owner-report-{now:%Y%m%d}.pdf",
        )

    return app

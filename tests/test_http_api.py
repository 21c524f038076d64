import os
import shutil
import tempfile
import unittest

from infrastructure.db.cartela_repository_sqlite import SqliteCartelaRepository
from infrastructure.db.game_repository_sqlite import SqliteGameRepository
from infrastructure.db.user_repository_sqlite import SqliteUserRepository
from infrastructure.security.passwords import BcryptPasswordHasher
from infrastructure.security.tokens import JwtTokenIssuer
from interfaces.http.app import Services, create_http_app

from sqlite_support import GRID


class HttpApiTests(unittest.TestCase):
    def setUp(self) -> None:
        self.tmpdir = tempfile.mkdtemp()
        db_path = os.path.join(self.tmpdir, "bingo.db")
        self.services = Services(
            user_repo=SqliteUserRepository(db_path),
            game_repo=SqliteGameRepository(db_path),
            cartela_repo=SqliteCartelaRepository(db_path),
            hasher=BcryptPasswordHasher(rounds=4),
            tokens=JwtTokenIssuer("test-secret"),
        )
        self.client = create_http_app(self.services).test_client()

    def tearDown(self) -> None:
        shutil.rmtree(self.tmpdir, ignore_errors=True)

    def _login(self, phone, password):
        response = self.client.post("/login", json={"phone": phone, "password": password})
        self.assertEqual(response.status_code, 200, response.get_json())
        return response.get_json()

    @staticmethod
    def _auth(token):
        return {"Authorization": f"Bearer {token}"}

    def _bootstrap(self):
        self.client.post("/owner", json={"phone": "0911", "password": "pw", "name": "Owner"})
        owner = self._login("0911", "pw")
        response = self.client.post(
            "/agents",
            json={"phone": "0922", "password": "apw", "name": "Abebe"},
            headers=self._auth(owner["token"]),
        )
        self.assertEqual(response.status_code, 201)
        agent = self._login("0922", "apw")
        return owner, agent

    def test_owner_agent_game_report_scenario(self):
        owner, agent = self._bootstrap()
        self.assertEqual(owner["role"], "owner")
        self.assertEqual(agent["role"], "agent")

        response = self.client.post(
            "/games",
            json={"players": 10, "pot": 100, "entryFee": 10},
            headers=self._auth(agent["token"]),
        )
        self.assertEqual(response.status_code, 201)
        game = response.get_json()["game"]
        self.assertEqual(game["status"], "created")
        self.assertEqual(game["profit"], 0)

        response = self.client.post(
            f"/games/{game['id']}/end",
            json={"winnerMoney": 60},
            headers=self._auth(agent["token"]),
        )
        settled = response.get_json()["game"]
        self.assertEqual(settled["profit"], 40)
        self.assertEqual(settled["status"], "completed")

        response = self.client.get(
            "/reports/owner?format=json", headers=self._auth(owner["token"])
        )
        report = response.get_json()["report"]
        self.assertEqual(len(report["sections"]), 1)
        self.assertEqual(report["sections"][0]["subtotal"], 40)
        self.assertEqual(report["grand_total"], 40)

        response = self.client.get("/reports/owner", headers=self._auth(owner["token"]))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.mimetype, "application/pdf")
        self.assertTrue(response.data.startswith(b"%PDF"))

    def test_deleting_agent_removes_their_games(self):
        owner, agent = self._bootstrap()
        for _ in range(3):
            self.client.post(
                "/games",
                json={"players": 5, "pot": 50, "entryFee": 10},
                headers=self._auth(agent["token"]),
            )
        games = self.client.get("/games", headers=self._auth(owner["token"])).get_json()
        self.assertEqual(len(games["games"]), 3)
        self.assertEqual(games["games"][0]["agent_name"], "Abebe")

        response = self.client.delete(
            f"/agents/{agent['userId']}", headers=self._auth(owner["token"])
        )
        self.assertEqual(response.get_json()["deletedGames"], 3)

        games = self.client.get("/games", headers=self._auth(owner["token"])).get_json()
        self.assertEqual(games["games"], [])

    def test_second_owner_is_conflict(self):
        self._bootstrap()
        response = self.client.post("/owner", json={"phone": "0999", "password": "x"})
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.get_json()["error"]["category"], "Conflict")

    def test_blocked_agent_cannot_log_in(self):
        owner, agent = self._bootstrap()
        response = self.client.post(
            f"/agents/{agent['userId']}/toggle", headers=self._auth(owner["token"])
        )
        self.assertFalse(response.get_json()["user"]["active"])

        response = self.client.post("/login", json={"phone": "0922", "password": "apw"})
        self.assertEqual(response.status_code, 403)
        response = self.client.post("/login", json={"phone": "0911", "password": "bad"})
        self.assertEqual(response.status_code, 401)

    def test_gateway_rejects_missing_bad_and_wrong_role_tokens(self):
        owner, agent = self._bootstrap()

        self.assertEqual(self.client.get("/games").status_code, 401)
        response = self.client.get("/games", headers=self._auth("garbage"))
        self.assertEqual(response.status_code, 403)
        response = self.client.get("/games", headers=self._auth(agent["token"]))
        self.assertEqual(response.status_code, 403)
        response = self.client.post(
            "/games",
            json={"players": 1, "pot": 1, "entryFee": 1},
            headers=self._auth(owner["token"]),
        )
        self.assertEqual(response.status_code, 403)

    def test_called_numbers_and_cartelas(self):
        _, agent = self._bootstrap()
        ids = [self.services.cartela_repo.add_cartela(GRID).id for _ in range(2)]
        headers = self._auth(agent["token"])

        available = self.client.get("/cartelas/available", headers=headers).get_json()
        self.assertEqual([c["id"] for c in available["cartelas"]], ids)

        game = self.client.post(
            "/games",
            json={"players": 2, "pot": 20, "entryFee": 10, "cartelas": ids, "date": "07/03/2024"},
            headers=headers,
        ).get_json()["game"]
        self.assertEqual(game["date"], "2024-03-07T00:00:00")

        response = self.client.post(
            "/games", json={"players": 2, "pot": 20, "entryFee": 10, "cartelas": ids},
            headers=headers,
        )
        self.assertEqual(response.status_code, 409)

        for _ in range(2):
            self.client.post(
                f"/games/{game['id']}/called", json={"numbers": [3, 17, 44]}, headers=headers
            )
        fetched = self.client.get(f"/games/{game['id']}", headers=headers).get_json()["game"]
        self.assertEqual(fetched["called"], [3, 17, 44])
        self.assertEqual(fetched["cartelas"], ids)
        self.assertEqual(fetched["status"], "in-progress")

        cards = self.client.get(f"/games/{game['id']}/cartelas", headers=headers).get_json()
        self.assertEqual([c["id"] for c in cards["cartelas"]], ids)

        response = self.client.post(f"/games/{game['id']}/cancel", headers=headers)
        self.assertEqual(response.get_json()["game"]["status"], "cancelled")
        available = self.client.get("/cartelas/available", headers=headers).get_json()
        self.assertEqual(len(available["cartelas"]), 2)

    def test_deleted_agent_token_is_rejected(self):
        owner, agent = self._bootstrap()
        self.client.delete(f"/agents/{agent['userId']}", headers=self._auth(owner["token"]))

        response = self.client.post(
            "/games",
            json={"players": 2, "pot": 20, "entryFee": 10},
            headers=self._auth(agent["token"]),
        )
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.get_json()["error"]["category"], "Unauthorized")

    def test_blocking_ends_live_agent_session(self):
        owner, agent = self._bootstrap()
        headers = self._auth(agent["token"])
        self.assertEqual(self.client.get("/games/my-history", headers=headers).status_code, 200)

        self.client.post(f"/agents/{agent['userId']}/toggle", headers=self._auth(owner["token"]))

        response = self.client.post(
            "/games", json={"players": 2, "pot": 20, "entryFee": 10}, headers=headers
        )
        self.assertEqual(response.status_code, 403)
        self.assertEqual(self.client.get("/games/my-history", headers=headers).status_code, 403)

    def test_non_finite_called_numbers_are_bad_request(self):
        _, agent = self._bootstrap()
        headers = self._auth(agent["token"])
        game = self.client.post(
            "/games", json={"players": 2, "pot": 20, "entryFee": 10}, headers=headers
        ).get_json()["game"]

        response = self.client.post(
            f"/games/{game['id']}/called",
            data='{"numbers": [1, NaN]}',
            content_type="application/json",
            headers=headers,
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()["error"]["category"], "BadRequest")

    def test_validation_errors_are_bad_request(self):
        _, agent = self._bootstrap()
        response = self.client.post(
            "/games", json={"players": 3}, headers=self._auth(agent["token"])
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()["error"]["category"], "BadRequest")

        response = self.client.get("/games/424242", headers=self._auth(agent["token"]))
        self.assertEqual(response.status_code, 404)


if __name__ == "__main__":
    unittest.main()

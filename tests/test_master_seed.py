import importlib
import os
import sys
import unittest


class MasterSeedTestCase(unittest.TestCase):
    def setUp(self):
        os.environ["DATABASE_URL"] = "sqlite:///:memory:"
        for var in ("RUN_SEED_MASTER", "MASTER_EMAIL", "MASTER_PASSWORD", "MASTER_NAME"):
            os.environ.pop(var, None)

        if "app" in sys.modules:
            self.app_module = importlib.reload(sys.modules["app"])
        else:
            self.app_module = importlib.import_module("app")

        self.app = self.app_module.create_app()
        self.app.testing = True
        self.ctx = self.app.app_context()
        self.ctx.push()
        self.app_module.db.create_all()

    def tearDown(self):
        self.app_module.db.session.remove()
        self.app_module.db.drop_all()
        self.ctx.pop()
        for var in ("DATABASE_URL", "RUN_SEED_MASTER", "MASTER_EMAIL", "MASTER_PASSWORD", "MASTER_NAME"):
            os.environ.pop(var, None)
        if "app" in sys.modules:
            del sys.modules["app"]

    def _login(self, client, email, password):
        return client.post("/api/auth/login", json={"email": email, "password": password})

    def test_default_master_created_and_login_succeeds(self):
        status, email = self.app_module._ensure_master_user(flask_app=self.app)
        self.assertEqual(status, "created")
        self.assertEqual(email, "master@shipyard.local")

        master = self.app_module.User.query.filter_by(role=self.app_module.RoleEnum.master).one()
        self.assertTrue(master.check_password("Master@123"))

        client = self.app.test_client()
        response = self._login(client, email, "Master@123")
        self.assertEqual(response.status_code, 200)
        data = response.get_json()
        self.assertIn("access_token", data)
        self.assertEqual(data["user"]["role"], "MASTER")

        me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {data['access_token']}"})
        self.assertEqual(me.status_code, 200)
        self.assertEqual(me.get_json()["email"], "master@shipyard.local")

    def test_second_call_is_idempotent_and_force_reset_changes_password(self):
        self.app_module._ensure_master_user(flask_app=self.app)
        status, _ = self.app_module._ensure_master_user(flask_app=self.app)
        self.assertEqual(status, "skipped")

        status, email = self.app_module._ensure_master_user(
            flask_app=self.app, password="NewPass!2", force_reset=True
        )
        self.assertEqual(status, "reset")

        client = self.app.test_client()
        self.assertEqual(self._login(client, email, "Master@123").status_code, 401)
        self.assertEqual(self._login(client, email, "NewPass!2").status_code, 200)

    def test_register_rules(self):
        _, email = self.app_module._ensure_master_user(flask_app=self.app)
        User = self.app_module.User
        admin = User(name="Admin", email="admin@example.com", role=self.app_module.RoleEnum.admin)
        admin.set_password("Password!1")
        operation = User(name="Ops", email="ops@example.com", role=self.app_module.RoleEnum.operation)
        operation.set_password("Password!1")
        self.app_module.db.session.add_all([admin, operation])
        self.app_module.db.session.commit()

        client = self.app.test_client()
        master_token = self._login(client, email, "Master@123").get_json()["access_token"]
        admin_token = self._login(client, "admin@example.com", "Password!1").get_json()["access_token"]
        ops_token = self._login(client, "ops@example.com", "Password!1").get_json()["access_token"]

        payload = {"name": "Planner", "email": "planner@example.com", "role": "ppic", "password": "Password!1"}
        response = client.post(
            "/api/auth/register", json=payload, headers={"Authorization": f"Bearer {ops_token}"}
        )
        self.assertEqual(response.status_code, 403)

        response = client.post(
            "/api/auth/register", json=payload, headers={"Authorization": f"Bearer {admin_token}"}
        )
        self.assertEqual(response.status_code, 201)

        response = client.post(
            "/api/auth/register", json=payload, headers={"Authorization": f"Bearer {admin_token}"}
        )
        self.assertEqual(response.status_code, 409)

        master_payload = {**payload, "email": "boss@example.com", "role": "MASTER"}
        response = client.post(
            "/api/auth/register", json=master_payload, headers={"Authorization": f"Bearer {admin_token}"}
        )
        self.assertEqual(response.status_code, 403)
        response = client.post(
            "/api/auth/register", json=master_payload, headers={"Authorization": f"Bearer {master_token}"}
        )
        self.assertEqual(response.status_code, 201)

        planner = User.query.filter_by(email="planner@example.com").one()
        self.assertEqual(planner.role, self.app_module.RoleEnum.ppic)

    def test_seed_lookup_defaults_is_idempotent(self):
        first = self.app_module.seed_lookup_defaults()
        self.assertGreater(first["service_types"], 0)
        self.assertGreater(first["locations"], 0)
        second = self.app_module.seed_lookup_defaults()
        self.assertEqual(second, {"service_types": 0, "locations": 0, "work_scopes": 0})


if __name__ == "__main__":
    unittest.main()

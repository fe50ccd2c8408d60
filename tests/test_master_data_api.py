import importlib
import os
import sys
import unittest


class MasterDataApiTestCase(unittest.TestCase):
    def setUp(self):
        os.environ["DATABASE_URL"] = "sqlite:///:memory:"
        if "app" in sys.modules:
            self.app_module = importlib.reload(sys.modules["app"])
        else:
            self.app_module = importlib.import_module("app")

        self.app = self.app_module.create_app()
        self.app.testing = True
        self.ctx = self.app.app_context()
        self.ctx.push()
        self.app_module.db.create_all()

        self.client = self.app.test_client()
        User = self.app_module.User
        RoleEnum = self.app_module.RoleEnum

        self.ppic = User(name="Planner", email="ppic@example.com", role=RoleEnum.ppic)
        self.ppic.set_password("Password!1")
        self.finance = User(name="Finance", email="finance@example.com", role=RoleEnum.finance)
        self.finance.set_password("Password!1")
        self.app_module.db.session.add_all([self.ppic, self.finance])
        self.app_module.db.session.commit()

        self.ppic_token = self._login("ppic@example.com")
        self.finance_token = self._login("finance@example.com")

    def tearDown(self):
        self.app_module.db.session.remove()
        self.app_module.db.drop_all()
        self.ctx.pop()
        os.environ.pop("DATABASE_URL", None)
        if "app" in sys.modules:
            del sys.modules["app"]

    def _login(self, email):
        response = self.client.post(
            "/api/auth/login",
            json={"email": email, "password": "Password!1"},
        )
        self.assertEqual(response.status_code, 200)
        return response.get_json()["access_token"]

    def _auth_headers(self, token):
        return {"Authorization": f"Bearer {token}"}

    def test_vessel_and_work_order_lifecycle(self):
        response = self.client.post(
            "/api/vessels",
            headers=self._auth_headers(self.ppic_token),
            json={"name": "  "},
        )
        self.assertEqual(response.status_code, 400)

        response = self.client.post(
            "/api/vessels",
            headers=self._auth_headers(self.ppic_token),
            json={"name": "KM Bahari", "type": "Tug", "company": "PT Samudra"},
        )
        self.assertEqual(response.status_code, 201)
        vessel_id = response.get_json()["id"]

        response = self.client.post(
            "/api/work-orders",
            headers=self._auth_headers(self.ppic_token),
            json={"vessel_id": vessel_id, "shipyard_wo_number": "WO-001", "shipyard_wo_date": "2024-06-01"},
        )
        self.assertEqual(response.status_code, 201, response.get_json())
        work_order = response.get_json()
        self.assertEqual(work_order["work_details_count"], 0)
        self.assertEqual(work_order["progress"], 0)

        response = self.client.post(
            "/api/work-orders",
            headers=self._auth_headers(self.ppic_token),
            json={"vessel_id": 999, "shipyard_wo_number": ""},
        )
        self.assertEqual(response.status_code, 400)
        errors = response.get_json()["errors"]
        self.assertIn("Selected vessel could not be found", errors)
        self.assertIn("Shipyard WO number is required", errors)

        response = self.client.delete(
            f"/api/vessels/{vessel_id}",
            headers=self._auth_headers(self.ppic_token),
        )
        self.assertEqual(response.status_code, 400)

        response = self.client.delete(
            f"/api/work-orders/{work_order['id']}",
            headers=self._auth_headers(self.ppic_token),
        )
        self.assertEqual(response.status_code, 200)
        response = self.client.delete(
            f"/api/vessels/{vessel_id}",
            headers=self._auth_headers(self.ppic_token),
        )
        self.assertEqual(response.status_code, 200)

        response = self.client.get("/api/vessels", headers=self._auth_headers(self.ppic_token))
        self.assertEqual(response.get_json(), [])

    def test_finance_cannot_manage_vessels(self):
        response = self.client.post(
            "/api/vessels",
            headers=self._auth_headers(self.finance_token),
            json={"name": "KM Bahari"},
        )
        self.assertEqual(response.status_code, 403)

    def test_dashboard_summary_counts(self):
        response = self.client.get("/api/dashboard/summary", headers=self._auth_headers(self.ppic_token))
        self.assertEqual(response.status_code, 200)
        data = response.get_json()
        self.assertEqual(data["work_details"]["total"], 0)
        self.assertEqual(data["bastp"]["DRAFT"], 0)
        self.assertIn("invoices", data)

        self.assertEqual(self.client.get("/api/dashboard/summary").status_code, 401)

    def test_unknown_route_returns_json(self):
        response = self.client.get("/api/does-not-exist")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.get_json(), {"msg": "Not found."})


if __name__ == "__main__":
    unittest.main()

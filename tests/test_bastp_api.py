import importlib
import io
import os
import shutil
import sys
import tempfile
import unittest
from datetime import date


class BastpApiTestCase(unittest.TestCase):
    def setUp(self):
        os.environ["DATABASE_URL"] = "sqlite:///:memory:"
        if "app" in sys.modules:
            self.app_module = importlib.reload(sys.modules["app"])
        else:
            self.app_module = importlib.import_module("app")

        self.app = self.app_module.create_app()
        self.app.testing = True
        self.storage_dir = tempfile.mkdtemp()
        self.app.extensions["document_storage"].root = self.storage_dir
        self.ctx = self.app.app_context()
        self.ctx.push()
        db = self.app_module.db
        db.create_all()
        self.app_module.seed_lookup_defaults()

        self.client = self.app.test_client()
        User = self.app_module.User
        RoleEnum = self.app_module.RoleEnum

        users = []
        for email, role in (
            ("ppic@example.com", RoleEnum.ppic),
            ("finance@example.com", RoleEnum.finance),
        ):
            user = User(name=email.split("@")[0].title(), email=email, role=role)
            user.set_password("Password!1")
            users.append(user)
        db.session.add_all(users)

        from models import Vessel, WorkOrder

        self.vessel = Vessel(name="KM Bahari", company="PT Samudra")
        self.other_vessel = Vessel(name="KM Lestari")
        db.session.add_all([self.vessel, self.other_vessel])
        db.session.flush()
        self.work_order = WorkOrder(vessel_id=self.vessel.id, shipyard_wo_number="WO-100")
        self.other_work_order = WorkOrder(vessel_id=self.other_vessel.id, shipyard_wo_number="WO-200")
        db.session.add_all([self.work_order, self.other_work_order])
        db.session.commit()

        self.ppic_token = self._login("ppic@example.com")
        self.finance_token = self._login("finance@example.com")

    def tearDown(self):
        self.app_module.db.session.remove()
        self.app_module.db.drop_all()
        self.ctx.pop()
        shutil.rmtree(self.storage_dir, ignore_errors=True)
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

    def _work_detail(self, progress=100, work_order=None):
        from models import ProgressReport, WorkDetail

        db = self.app_module.db
        detail = WorkDetail(
            work_order_id=(work_order or self.work_order).id,
            description="Blast and paint hull",
            work_location="Hull",
            quantity=120,
            uom="m2",
            pic="Budi",
            actual_start_date=date(2024, 6, 1),
            actual_close_date=date(2024, 6, 5) if progress >= 100 else None,
        )
        db.session.add(detail)
        db.session.flush()
        db.session.add(
            ProgressReport(work_details_id=detail.id, progress_percentage=progress, report_date=date(2024, 6, 5))
        )
        db.session.commit()
        return detail.id

    def _create_bastp(self, detail_ids, number="BASTP-001", **extra):
        payload = {
            "number": number,
            "date": "2024-06-10",
            "vessel_id": self.vessel.id,
            "work_details_ids": detail_ids,
        }
        payload.update(extra)
        return self.client.post(
            "/api/bastp",
            headers=self._auth_headers(self.ppic_token),
            json=payload,
        )

    def _verify(self, detail_id):
        response = self.client.post(
            f"/api/work-verification/{detail_id}",
            headers=self._auth_headers(self.ppic_token),
            json={},
        )
        self.assertEqual(response.status_code, 201, response.get_json())
        return response.get_json()

    def _bastp(self, bastp_id):
        response = self.client.get(
            f"/api/bastp/{bastp_id}",
            headers=self._auth_headers(self.ppic_token),
        )
        self.assertEqual(response.status_code, 200)
        return response.get_json()

    def _upload_document(self, bastp_id):
        return self.client.post(
            f"/api/bastp/{bastp_id}/document",
            headers=self._auth_headers(self.ppic_token),
            data={"file": (io.BytesIO(b"%PDF-1.4 signed"), "signed.pdf", "application/pdf")},
            content_type="multipart/form-data",
        )

    def test_create_validates_work_details(self):
        complete = self._work_detail()
        unfinished = self._work_detail(progress=60)
        foreign = self._work_detail(work_order=self.other_work_order)

        response = self._create_bastp([unfinished, foreign])
        self.assertEqual(response.status_code, 400)
        errors = response.get_json()["errors"]
        self.assertIn(f"Work detail {unfinished} has not reached 100% progress", errors)
        self.assertIn(f"Work detail {foreign} does not belong to the selected vessel", errors)

        response = self._create_bastp([])
        self.assertEqual(response.status_code, 400)
        self.assertIn("Select at least one work detail", response.get_json()["errors"])

        response = self._create_bastp([complete])
        self.assertEqual(response.status_code, 201, response.get_json())
        self.assertEqual(response.get_json()["status"], "DRAFT")

        response = self._create_bastp([complete], number="BASTP-002")
        self.assertEqual(response.status_code, 400)
        self.assertIn(
            f"Work detail {complete} is already included in BASTP BASTP-001",
            response.get_json()["errors"],
        )

    def test_available_work_details_excludes_linked_and_unfinished(self):
        linked = self._work_detail()
        free = self._work_detail()
        self._work_detail(progress=80)
        self.assertEqual(self._create_bastp([linked]).status_code, 201)

        response = self.client.get(
            f"/api/bastp/available-work-details?vessel_id={self.vessel.id}",
            headers=self._auth_headers(self.ppic_token),
        )
        self.assertEqual(response.status_code, 200)
        items = response.get_json()
        self.assertEqual([item["id"] for item in items], [free])
        self.assertFalse(items[0]["is_verified"])

        response = self.client.get(
            "/api/bastp/available-work-details",
            headers=self._auth_headers(self.ppic_token),
        )
        self.assertEqual(response.status_code, 400)

    def test_general_services_count_inclusive_days(self):
        detail = self._work_detail()
        service_type = self.client.get(
            "/api/lookups/general-service-types",
            headers=self._auth_headers(self.ppic_token),
        ).get_json()[0]

        response = self._create_bastp(
            [detail],
            general_services=[
                {
                    "service_type_id": service_type["id"],
                    "start_date": "2024-06-01",
                    "close_date": "2024-06-03",
                    "unit_price": 100000,
                    "payment_price": 300000,
                }
            ],
        )
        self.assertEqual(response.status_code, 201, response.get_json())
        services = response.get_json()["general_services"]
        self.assertEqual(len(services), 1)
        self.assertEqual(services[0]["total_days"], 3)

        response = self._create_bastp(
            [self._work_detail()],
            number="BASTP-009",
            general_services=[
                {"service_type_id": service_type["id"], "start_date": "2024-06-03", "close_date": "2024-06-01"}
            ],
        )
        self.assertEqual(response.status_code, 400)
        self.assertIn("Service #1: Close date must be on or after start date", response.get_json()["errors"])

    def test_status_flow_from_draft_to_invoiced(self):
        detail = self._work_detail()
        response = self._create_bastp([detail])
        bastp_id = response.get_json()["id"]

        response = self.client.get("/api/bastp", headers=self._auth_headers(self.ppic_token))
        self.assertEqual(response.get_json()["items"][0]["status"], "DRAFT")

        verification = self._verify(detail)
        response = self.client.get("/api/bastp", headers=self._auth_headers(self.ppic_token))
        data = response.get_json()
        self.assertEqual(data["items"][0]["status"], "VERIFIED")
        self.assertEqual(data["counts"]["VERIFIED"], 1)

        response = self.client.patch(
            f"/api/bastp/{bastp_id}",
            headers=self._auth_headers(self.ppic_token),
            json={"work_details_ids": [detail]},
        )
        self.assertEqual(response.status_code, 400)

        response = self.client.post(
            "/api/invoices",
            headers=self._auth_headers(self.finance_token),
            json={"bastp_id": bastp_id, "invoice_number": "INV-001"},
        )
        self.assertEqual(response.status_code, 400)
        self.assertIn("BASTP BASTP-001 is VERIFIED and cannot be invoiced", response.get_json()["errors"])

        response = self._upload_document(bastp_id)
        self.assertEqual(response.status_code, 200, response.get_json())
        self.assertEqual(response.get_json()["status"], "READY_FOR_INVOICE")
        self.assertIsNotNone(response.get_json()["bastp_upload_date"])

        response = self.client.delete(
            f"/api/work-verification/{verification['id']}",
            headers=self._auth_headers(self.ppic_token),
        )
        self.assertEqual(response.status_code, 400)

        response = self.client.delete(
            f"/api/bastp/{bastp_id}",
            headers=self._auth_headers(self.ppic_token),
        )
        self.assertEqual(response.status_code, 400)

        response = self.client.post(
            "/api/invoices",
            headers=self._auth_headers(self.ppic_token),
            json={"bastp_id": bastp_id, "invoice_number": "INV-001"},
        )
        self.assertEqual(response.status_code, 403)

        response = self.client.post(
            "/api/invoices",
            headers=self._auth_headers(self.finance_token),
            json={
                "bastp_id": bastp_id,
                "invoice_number": "INV-001",
                "payment_price": 1500000,
                "payment_status": False,
                "payment_date": "2024-07-01",
            },
        )
        self.assertEqual(response.status_code, 201, response.get_json())
        invoice = response.get_json()
        self.assertIsNone(invoice["payment_date"])
        self.assertEqual(invoice["bastp"]["status"], "INVOICED")
        self.assertEqual(self._bastp(bastp_id)["status"], "INVOICED")

        response = self.client.patch(
            f"/api/bastp/{bastp_id}",
            headers=self._auth_headers(self.ppic_token),
            json={"delivery_date": "2024-06-20"},
        )
        self.assertEqual(response.status_code, 400)

        response = self.client.get(
            f"/api/invoices/{invoice['id']}/print",
            headers=self._auth_headers(self.finance_token),
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.mimetype, "application/pdf")
        self.assertTrue(response.data.startswith(b"%PDF"))

        response = self.client.delete(
            f"/api/invoices/{invoice['id']}",
            headers=self._auth_headers(self.finance_token),
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(self._bastp(bastp_id)["status"], "INVOICED")

    def test_draft_bastp_can_be_edited_and_deleted(self):
        first = self._work_detail()
        second = self._work_detail()
        bastp_id = self._create_bastp([first]).get_json()["id"]

        response = self.client.patch(
            f"/api/bastp/{bastp_id}",
            headers=self._auth_headers(self.ppic_token),
            json={"work_details_ids": [second], "delivery_date": "2024-06-15"},
        )
        self.assertEqual(response.status_code, 200, response.get_json())
        data = response.get_json()
        self.assertEqual(data["work_detail_ids"], [second])
        self.assertEqual(data["delivery_date"], "2024-06-15")

        response = self.client.delete(
            f"/api/bastp/{bastp_id}",
            headers=self._auth_headers(self.ppic_token),
        )
        self.assertEqual(response.status_code, 200)
        response = self.client.get(f"/api/bastp/{bastp_id}", headers=self._auth_headers(self.ppic_token))
        self.assertEqual(response.status_code, 404)

        # Work released by the deleted BASTP can be handed over again.
        self.assertEqual(self._create_bastp([first, second], number="BASTP-003").status_code, 201)

    def test_material_control_per_work_detail(self):
        detail = self._work_detail()
        outside = self._work_detail()
        bastp_id = self._create_bastp([detail]).get_json()["id"]

        response = self.client.post(
            "/api/materials",
            headers=self._auth_headers(self.ppic_token),
            json={"material": "Steel plate", "specification": "A36", "category": "Steel"},
        )
        self.assertEqual(response.status_code, 201)
        material_id = response.get_json()["id"]

        response = self.client.post(
            f"/api/materials/bastp/{bastp_id}",
            headers=self._auth_headers(self.ppic_token),
            json={"work_details_id": outside, "materials": [{"material_id": material_id, "amount": 1, "uom": "sheet"}]},
        )
        self.assertEqual(response.status_code, 400)
        self.assertIn("Work detail is not part of this BASTP", response.get_json()["errors"])

        response = self.client.post(
            f"/api/materials/bastp/{bastp_id}",
            headers=self._auth_headers(self.ppic_token),
            json={
                "work_details_id": detail,
                "materials": [
                    {"material_id": material_id, "amount": 2, "uom": "sheet", "size": "6mm"},
                    {"material_id": material_id, "amount": 0, "uom": ""},
                ],
            },
        )
        self.assertEqual(response.status_code, 400)
        errors = response.get_json()["errors"]
        self.assertIn("Material #2: Amount must be greater than 0", errors)
        self.assertIn("Material #2: UOM is required", errors)

        response = self.client.post(
            f"/api/materials/bastp/{bastp_id}",
            headers=self._auth_headers(self.ppic_token),
            json={
                "work_details_id": detail,
                "materials": [
                    {"material_id": material_id, "amount": 2, "uom": "sheet"},
                    {"material_id": material_id, "amount": 1.5, "uom": "sheet"},
                ],
            },
        )
        self.assertEqual(response.status_code, 201, response.get_json())

        response = self.client.get(
            f"/api/materials/bastp/{bastp_id}",
            headers=self._auth_headers(self.ppic_token),
        )
        data = response.get_json()
        self.assertEqual(len(data["items"]), 2)
        self.assertEqual(data["summary"][0]["amount"], 3.5)
        self.assertEqual(data["summary"][0]["entries"], 2)

    def test_finance_cannot_manage_bastp(self):
        detail = self._work_detail()
        response = self.client.post(
            "/api/bastp",
            headers=self._auth_headers(self.finance_token),
            json={"number": "BASTP-X", "date": "2024-06-10", "vessel_id": self.vessel.id, "work_details_ids": [detail]},
        )
        self.assertEqual(response.status_code, 403)


if __name__ == "__main__":
    unittest.main()

import io

from django.core.files.uploadedfile import SimpleUploadedFile
from openpyxl import load_workbook
from rest_framework import status
from rest_framework.test import APIClient, APITestCase

from core.models import DomainActivity
from events.models import EventRegistration, Team, TeamMember
from .helpers import make_coach, make_event, make_student


class TeamApiTests(APITestCase):
    def setUp(self):
        self.client = APIClient()
        self.event = make_event()
        self.a = make_student("a", real_name="张三")
        self.b = make_student("b", real_name="李四")
        self.c = make_student("c", real_name="王五")

    def auth(self, user):
        self.client.force_authenticate(user=user)

    def create_team(self, user, game_type="接力赛", **extra):
        self.auth(user)
        payload = {"game_type": game_type, **extra}
        resp = self.client.post(f"/api/events/{self.event.id}/teams/", payload, format="json")
        self.assertEqual(resp.status_code, status.HTTP_201_CREATED, resp.content)
        return resp.json()["invite_code"]

    def join(self, user, code):
        self.auth(user)
        return self.client.post(
            f"/api/events/{self.event.id}/teams/", {"invite_code": code}, format="json"
        )

    def test_create_join_full_flow(self):
        code = self.create_team(self.a, team_name="Rockets", group="M12")

        self.auth(self.b)
        resp = self.client.get(f"/api/events/teams/{code}/")
        self.assertEqual(resp.status_code, 200)
        data = resp.json()
        self.assertEqual(data["caller_status"], "can_join")
        self.assertEqual(data["creator_student_id"], self.a.id)
        self.assertEqual(data["capacity"], 2)
        self.assertEqual(data["game_type"], {"name": "接力赛", "kind": "relay"})

        resp = self.join(self.b, code)
        self.assertEqual(resp.status_code, 200)
        team = resp.json()["entries"][0]["team"]
        self.assertEqual(team["invite_code"], code)
        self.assertFalse(team["is_captain"])
        self.assertEqual([m["run_order"] for m in team["members"]], [1, 2])

        resp = self.join(self.c, code)
        self.assertEqual(resp.status_code, status.HTTP_409_CONFLICT)
        body = resp.json()
        self.assertFalse(body["success"])
        self.assertEqual(body["errors"]["code"], "team_full")

        self.auth(self.c)
        self.assertEqual(self.client.get(f"/api/events/teams/{code}/").json()["caller_status"], "team_full")

    def test_unknown_invite_code(self):
        self.auth(self.a)
        resp = self.client.get("/api/events/teams/NOPE1234/")
        self.assertEqual(resp.status_code, 404)
        self.assertEqual(resp.json()["errors"]["code"], "invite_not_found")

    def test_invite_code_from_other_event_is_not_found(self):
        code = self.create_team(self.a)
        other = make_event(name="Autumn Relay")

        self.auth(self.b)
        resp = self.client.post(f"/api/events/{other.id}/teams/", {"invite_code": code}, format="json")
        self.assertEqual(resp.status_code, 404)

    def test_create_requires_game_type(self):
        self.auth(self.a)
        resp = self.client.post(f"/api/events/{self.event.id}/teams/", {}, format="json")
        self.assertEqual(resp.status_code, 400)

    def test_closed_window_is_rejected_at_the_gateway(self):
        self.event.open_registration = False
        self.event.save()

        self.auth(self.a)
        resp = self.client.post(f"/api/events/{self.event.id}/teams/", {"game_type": "接力赛"}, format="json")
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["errors"]["code"], "registration_closed")
        self.assertFalse(Team.objects.exists())

    def test_closed_window_blocks_rename_and_captain_transfer(self):
        code = self.create_team(self.a, game_type="团队赛", team_name="Rockets")
        self.join(self.b, code)
        self.event.open_registration = False
        self.event.save()

        self.auth(self.a)
        resp = self.client.patch(f"/api/events/teams/{code}/", {"name": "Late"}, format="json")
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["errors"]["code"], "registration_closed")

        resp = self.client.post(f"/api/events/teams/{code}/captain/", {"student_id": self.b.id}, format="json")
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["errors"]["code"], "registration_closed")

        team = Team.objects.get(invite_code=code)
        self.assertEqual(team.name, "Rockets")
        self.assertTrue(team.members.get(student=self.a).is_captain)

    def test_coach_may_rename_after_window_closes(self):
        code = self.create_team(self.a, game_type="团队赛")
        self.event.open_registration = False
        self.event.save()

        self.auth(make_coach())
        resp = self.client.patch(f"/api/events/teams/{code}/", {"name": "Fixed"}, format="json")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["name"], "Fixed")

    def test_join_with_mismatched_game_type(self):
        code = self.create_team(self.a, game_type="团队赛")

        self.auth(self.b)
        resp = self.client.post(
            f"/api/events/{self.event.id}/teams/",
            {"game_type": "接力赛", "invite_code": code},
            format="json",
        )
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["errors"]["code"], "game_type_mismatch")
        self.assertFalse(TeamMember.objects.filter(student=self.b).exists())

        resp = self.client.post(
            f"/api/events/{self.event.id}/teams/",
            {"game_type": "团队赛", "invite_code": code},
            format="json",
        )
        self.assertEqual(resp.status_code, 200)

    def test_leave_and_captain_handover(self):
        code = self.create_team(self.a)
        self.join(self.b, code)

        self.auth(self.a)
        resp = self.client.post(f"/api/events/teams/{code}/leave/")
        self.assertEqual(resp.status_code, status.HTTP_204_NO_CONTENT)

        self.auth(self.b)
        data = self.client.get(f"/api/events/teams/{code}/").json()
        self.assertEqual(data["creator_student_id"], self.b.id)
        self.assertEqual(data["caller_status"], "member")

        resp = self.client.post(f"/api/events/teams/{code}/leave/")
        self.assertEqual(resp.status_code, 204)
        self.assertEqual(self.client.get(f"/api/events/teams/{code}/").status_code, 404)

    def test_switch_endpoint(self):
        k1 = self.create_team(self.a)
        k2 = self.create_team(self.c)
        self.join(self.b, k1)

        self.auth(self.b)
        self.assertEqual(self.client.get(f"/api/events/teams/{k2}/").json()["caller_status"], "switch_required")

        resp = self.client.post(f"/api/events/teams/{k2}/switch/", {}, format="json")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["entries"][0]["team"]["invite_code"], k2)
        self.assertFalse(TeamMember.objects.filter(team__invite_code=k1, student=self.b).exists())

    def test_captain_transfer_and_rename(self):
        code = self.create_team(self.a, game_type="团队赛")
        self.join(self.b, code)

        self.auth(self.b)
        resp = self.client.patch(f"/api/events/teams/{code}/", {"name": "Nope"}, format="json")
        self.assertEqual(resp.status_code, 403)

        self.auth(self.a)
        resp = self.client.post(f"/api/events/teams/{code}/captain/", {"student_id": self.b.id}, format="json")
        self.assertEqual(resp.status_code, 200)
        captains = [m["student_id"] for m in resp.json()["members"] if m["is_captain"]]
        self.assertEqual(captains, [self.b.id])

        self.auth(self.b)
        resp = self.client.patch(f"/api/events/teams/{code}/", {"name": "Comets"}, format="json")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["name"], "Comets")

    def test_requires_authentication(self):
        resp = self.client.get("/api/events/teams/ABCD1234/")
        self.assertEqual(resp.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertFalse(resp.json()["success"])


class RegistrationApiTests(APITestCase):
    def setUp(self):
        self.client = APIClient()
        self.event = make_event()
        self.coach = make_coach()
        self.student = make_student("s", real_name="张三")

    def auth(self, user):
        self.client.force_authenticate(user=user)

    def register(self, user, entries):
        self.auth(user)
        return self.client.post(f"/api/events/{self.event.id}/register/", {"entries": entries}, format="json")

    def test_event_detail_lists_game_types(self):
        self.auth(self.student)
        resp = self.client.get(f"/api/events/{self.event.id}/")
        self.assertEqual(resp.status_code, 200)
        kinds = {gt["name"]: gt["kind"] for gt in resp.json()["game_types"]}
        self.assertEqual(kinds, {"接力赛": "relay", "团队赛": "team", "短距离": "individual"})

    def test_unknown_event(self):
        self.auth(self.student)
        resp = self.client.get("/api/events/9999/")
        self.assertEqual(resp.status_code, 404)
        self.assertEqual(resp.json()["errors"]["code"], "event_not_found")

    def test_register_individual_and_status(self):
        resp = self.register(self.student, [{"game_type": "短距离", "group": "M12"}])
        self.assertEqual(resp.status_code, 201)
        self.assertEqual(resp.json()["status"], EventRegistration.STATUS_PENDING)

        resp = self.client.get(f"/api/events/{self.event.id}/registration/")
        self.assertTrue(resp.json()["registered"])
        self.assertEqual(resp.json()["entries"][0]["game_type"], "短距离")

        resp = self.register(self.student, [{"game_type": "短距离"}])
        self.assertEqual(resp.status_code, 409)
        self.assertEqual(resp.json()["errors"]["code"], "duplicate_entry")

    def test_registration_status_when_not_registered(self):
        self.auth(self.student)
        resp = self.client.get(f"/api/events/{self.event.id}/registration/")
        self.assertEqual(resp.json(), {"registered": False})

    def test_my_registrations(self):
        self.register(self.student, [{"game_type": "短距离"}])
        other = make_event(name="Autumn Relay")
        self.auth(self.student)
        self.client.post(f"/api/events/{other.id}/register/", {"entries": [{"game_type": "短距离"}]}, format="json")

        resp = self.client.get("/api/events/me/registrations/")
        self.assertEqual(len(resp.json()), 2)
        resp = self.client.get(f"/api/events/me/registrations/?event={other.id}")
        self.assertEqual([r["event"]["id"] for r in resp.json()], [other.id])

    def test_withdraw_and_cancel(self):
        self.register(self.student, [{"game_type": "短距离"}])

        resp = self.client.post(f"/api/events/{self.event.id}/withdraw/", {"game_type": "短距离"}, format="json")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["entries"], [])

        resp = self.client.post(f"/api/events/{self.event.id}/cancel/")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["status"], EventRegistration.STATUS_CANCELLED)

    def test_coach_cancels_after_window_closes(self):
        resp = self.register(self.student, [{"game_type": "短距离"}])
        reg_id = resp.json()["id"]
        self.event.open_registration = False
        self.event.save()

        resp = self.client.post(f"/api/events/{self.event.id}/cancel/")
        self.assertEqual(resp.status_code, 400)

        self.auth(self.coach)
        resp = self.client.post(f"/api/events/registrations/{reg_id}/cancel/")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["status"], EventRegistration.STATUS_CANCELLED)

    def test_coach_lists_registrations(self):
        self.register(self.student, [{"game_type": "短距离"}])

        self.auth(self.student)
        self.assertEqual(self.client.get(f"/api/events/{self.event.id}/registrations/").status_code, 403)

        self.auth(self.coach)
        resp = self.client.get(f"/api/events/{self.event.id}/registrations/", {"limit": 10, "game_type": "短距离"})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["count"], 1)
        self.assertEqual(resp.json()["results"][0]["student_name"], "张三")

    def test_export_csv_and_xlsx(self):
        self.register(self.student, [{"game_type": "短距离", "group": "M12"}])
        self.auth(self.coach)

        resp = self.client.get(f"/api/events/{self.event.id}/registrations/export/")
        self.assertEqual(resp.status_code, 200)
        self.assertTrue(resp["Content-Type"].startswith("text/csv"))
        self.assertIn("张三,M12,短距离", resp.content.decode("utf-8-sig"))

        resp = self.client.get(f"/api/events/{self.event.id}/registrations/export/?type=xlsx")
        self.assertEqual(resp.status_code, 200)
        ws = load_workbook(io.BytesIO(resp.content)).active
        self.assertEqual(ws.cell(row=2, column=1).value, "张三")

        resp = self.client.get(f"/api/events/{self.event.id}/registrations/export/?type=pdf")
        self.assertEqual(resp.status_code, 400)

    def test_import_json_rows(self):
        rows = [
            {"赛事": self.event.name, "姓名": "张三", "组别": "M12", "项目": "短距离"},
            {"赛事": self.event.name, "姓名": "查无此人", "组别": "M12", "项目": "短距离"},
        ]

        self.auth(self.student)
        resp = self.client.post("/api/events/registrations/import/", {"rows": rows}, format="json")
        self.assertEqual(resp.status_code, 403)

        self.auth(self.coach)
        resp = self.client.post("/api/events/registrations/import/", {"rows": rows}, format="json")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json(), {
            "inserted_count": 1,
            "updated_count": 0,
            "errors": [{"row": 2, "student_name": "查无此人", "error": "Student '查无此人' not found"}],
        })

    def test_import_csv_upload(self):
        content = f"eventName,studentName,group,gameTypes\n{self.event.name},张三,M12,短距离\n".encode("utf-8")
        upload = SimpleUploadedFile("registrations.csv", content, content_type="text/csv")

        self.auth(self.coach)
        resp = self.client.post("/api/events/registrations/import/", {"file": upload}, format="multipart")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["inserted_count"], 1)

    def test_import_rejects_unknown_file_type(self):
        upload = SimpleUploadedFile("registrations.txt", b"hello", content_type="text/plain")
        self.auth(self.coach)
        resp = self.client.post("/api/events/registrations/import/", {"file": upload}, format="multipart")
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["errors"]["code"], "unsupported_format")

    def test_import_rejects_non_utf8_csv(self):
        content = f"赛事,姓名,组别,项目\n{self.event.name},张三,M12,短距离\n".encode("gbk")
        upload = SimpleUploadedFile("registrations.csv", content, content_type="text/csv")

        self.auth(self.coach)
        resp = self.client.post("/api/events/registrations/import/", {"file": upload}, format="multipart")
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["errors"]["code"], "unreadable_file")
        self.assertFalse(EventRegistration.objects.exists())

    def test_import_rejects_corrupt_xlsx(self):
        upload = SimpleUploadedFile(
            "registrations.xlsx",
            b"not a zip",
            content_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        )

        self.auth(self.coach)
        resp = self.client.post("/api/events/registrations/import/", {"file": upload}, format="multipart")
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["errors"]["code"], "unreadable_file")


class RegistrationReviewApiTests(APITestCase):
    def setUp(self):
        self.client = APIClient()
        self.event = make_event()
        self.coach = make_coach()
        self.a = make_student("a", real_name="张三")
        self.b = make_student("b", real_name="李四")

        self.client.force_authenticate(user=self.a)
        resp = self.client.post(
            f"/api/events/{self.event.id}/teams/", {"game_type": "接力赛"}, format="json"
        )
        self.code = resp.json()["invite_code"]
        self.reg_id = resp.json()["id"]
        self.client.force_authenticate(user=self.b)
        self.client.post(f"/api/events/{self.event.id}/teams/", {"invite_code": self.code}, format="json")

    def url(self):
        return f"/api/events/registrations/{self.reg_id}/"

    def test_coach_confirms_and_annotates(self):
        self.client.force_authenticate(user=self.coach)
        resp = self.client.patch(self.url(), {"status": "confirmed", "notes": "paid"}, format="json")

        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["status"], EventRegistration.STATUS_CONFIRMED)
        self.assertEqual(resp.json()["notes"], "paid")
        self.assertTrue(
            DomainActivity.objects.filter(verb="registration.updated", object_id=self.reg_id).exists()
        )

    def test_coach_cancel_releases_team_seat(self):
        self.client.force_authenticate(user=self.coach)
        resp = self.client.patch(self.url(), {"status": "cancelled"}, format="json")

        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["status"], EventRegistration.STATUS_CANCELLED)
        team = Team.objects.get(invite_code=self.code)
        self.assertEqual(team.member_count, 1)
        self.assertTrue(team.members.get(student=self.b).is_captain)

        resp = self.client.patch(self.url(), {"status": "confirmed"}, format="json")
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["errors"]["code"], "registration_cancelled")

    def test_unknown_status_is_rejected(self):
        self.client.force_authenticate(user=self.coach)
        resp = self.client.patch(self.url(), {"status": "approved"}, format="json")
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["errors"]["code"], "invalid_status")
        self.assertEqual(EventRegistration.objects.get(pk=self.reg_id).status, EventRegistration.STATUS_PENDING)

    def test_students_cannot_review(self):
        self.client.force_authenticate(user=self.a)
        resp = self.client.patch(self.url(), {"status": "confirmed"}, format="json")
        self.assertEqual(resp.status_code, 403)

    def test_unknown_registration(self):
        self.client.force_authenticate(user=self.coach)
        resp = self.client.patch("/api/events/registrations/99999/", {"notes": "x"}, format="json")
        self.assertEqual(resp.status_code, 404)

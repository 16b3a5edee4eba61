import io
import itertools

from django.test import TestCase, override_settings
from openpyxl import Workbook, load_workbook

from core.exceptions import RegistrationValidationError
from events.exporter import EXPORT_COLUMNS, export_rows, render_csv, render_xlsx
from events.importer import (
    RegistrationImporter,
    canonical_row,
    read_csv_rows,
    read_xlsx_rows,
    split_game_types,
)
from events.models import EventRegistration, GameTypeEntry
from events.team_engine import TeamFormationEngine
from users.directory import StudentDirectory
from .helpers import make_coach, make_event, make_student


class ImportParsingTests(TestCase):

    def test_split_game_types_accepts_mixed_separators(self):
        self.assertEqual(split_game_types("接力赛，短距离、团队赛,短距离"), ["接力赛", "短距离", "团队赛"])
        self.assertEqual(split_game_types(["接力赛", " ", "短距离"]), ["接力赛", "短距离"])
        self.assertEqual(split_game_types(None), [])

    def test_canonical_row_header_aliases(self):
        row = canonical_row({"赛事": " Spring Relay ", "姓名": "张三", "组别": "M12", "项目": "接力赛、短距离"})
        self.assertEqual(row, {
            "event_name": "Spring Relay",
            "student_name": "张三",
            "group": "M12",
            "game_types": ["接力赛", "短距离"],
        })

        row = canonical_row({"Event Name": "E", "student_name": "S", "gameTypes": "短距离", "extra": "x"})
        self.assertEqual(row["event_name"], "E")
        self.assertEqual(row["student_name"], "S")
        self.assertEqual(row["game_types"], ["短距离"])

    def test_read_csv_rows_strips_bom(self):
        content = "赛事,姓名,组别,项目\nSpring Relay,张三,M12,\"接力赛,短距离\"\n".encode("utf-8-sig")
        rows = read_csv_rows(io.BytesIO(content))
        self.assertEqual(rows, [{"赛事": "Spring Relay", "姓名": "张三", "组别": "M12", "项目": "接力赛,短距离"}])

    def test_read_xlsx_rows_skips_blank_lines(self):
        wb = Workbook()
        ws = wb.active
        ws.append(["eventName", "studentName", "group", "gameTypes"])
        ws.append(["Spring Relay", "张三", "M12", "短距离"])
        ws.append([None, None, None, None])
        ws.append(["Spring Relay", "李四", "W12", "接力赛"])
        buffer = io.BytesIO()
        wb.save(buffer)
        buffer.seek(0)

        rows = read_xlsx_rows(buffer)

        self.assertEqual([r["studentName"] for r in rows], ["张三", "李四"])


class RegistrationImportTests(TestCase):
    def setUp(self):
        self.event = make_event(name="春季接力赛")
        self.coach = make_coach()
        self.students = [make_student(f"s{i}", real_name=f"学生{i}") for i in range(17)]

        self.rows = []
        known = iter(self.students)
        for position in range(1, 21):
            if position in (5, 10, 15):
                name = f"无名氏{position}"
            else:
                name = next(known).real_name
            self.rows.append({
                "eventName": "春季接力赛",
                "studentName": name,
                "group": "M12",
                "gameTypes": "接力赛，短距离" if position % 2 else "短距离",
            })

    def test_unknown_students_are_row_errors(self):
        result = RegistrationImporter(self.coach).run(self.rows)

        self.assertEqual(result.inserted_count, 17)
        self.assertEqual(result.updated_count, 0)
        self.assertEqual([e.row for e in result.errors], [5, 10, 15])
        self.assertEqual([e.student_name for e in result.errors], ["无名氏5", "无名氏10", "无名氏15"])
        self.assertTrue(all("not found" in e.error for e in result.errors))

        regs = EventRegistration.objects.filter(event=self.event)
        self.assertEqual(regs.count(), 17)
        self.assertFalse(regs.exclude(status=EventRegistration.STATUS_CONFIRMED).exists())

    def test_retried_batch_creates_nothing_new(self):
        RegistrationImporter(self.coach).run(self.rows)
        entries_before = GameTypeEntry.objects.filter(is_active=True).count()

        result = RegistrationImporter(self.coach).run(self.rows)

        self.assertEqual(result.inserted_count, 0)
        self.assertEqual(result.updated_count, 17)
        self.assertEqual(len(result.errors), 3)
        self.assertEqual(EventRegistration.objects.filter(event=self.event).count(), 17)
        self.assertEqual(GameTypeEntry.objects.filter(is_active=True).count(), entries_before)

    def test_merge_updates_group_and_keeps_team(self):
        student = self.students[0]
        _, team = TeamFormationEngine().create_team(student, self.event, "接力赛", group="M12")

        result = RegistrationImporter(self.coach).run([{
            "eventName": "春季接力赛",
            "studentName": student.real_name,
            "group": "M14",
            "gameTypes": "接力赛、短距离",
        }])

        self.assertEqual((result.inserted_count, result.updated_count), (0, 1))
        relay = GameTypeEntry.objects.get(registration__student=student, game_type__name="接力赛", is_active=True)
        self.assertEqual((relay.group, relay.team_id), ("M14", team.id))
        reg = EventRegistration.objects.get(student=student, event=self.event)
        self.assertEqual(reg.status, EventRegistration.STATUS_CONFIRMED)

    def test_bad_event_game_type_and_missing_fields(self):
        name = self.students[0].real_name
        result = RegistrationImporter(self.coach).run([
            {"eventName": "不存在的赛事", "studentName": name, "gameTypes": "短距离"},
            {"eventName": "春季接力赛", "studentName": name, "gameTypes": "马拉松"},
            {"eventName": "", "studentName": name, "gameTypes": "短距离"},
            {"eventName": "春季接力赛", "studentName": name, "gameTypes": ""},
        ])

        self.assertEqual(result.inserted_count + result.updated_count, 0)
        self.assertEqual([e.row for e in result.errors], [1, 2, 3, 4])
        self.assertIn("Unknown event", result.errors[0].error)
        self.assertIn("马拉松", result.errors[1].error)

    def test_ambiguous_names_are_not_guessed(self):
        make_student("twin", real_name=self.students[0].real_name)
        result = RegistrationImporter(self.coach).run(self.rows[:1])
        self.assertEqual(result.inserted_count, 0)
        self.assertIn("more than one", result.errors[0].error)

    def test_directory_deadline_marks_rows_timed_out(self):
        ticks = itertools.count()
        directory = StudentDirectory(timeout=0, chunk_size=5, clock=lambda: next(ticks))

        result = RegistrationImporter(self.coach, directory=directory).run(self.rows)

        self.assertEqual(result.inserted_count, 0)
        self.assertEqual(len(result.errors), 20)
        self.assertIn("timed out", result.errors[0].error)

    @override_settings(REGISTRATION={"IMPORT_MAX_ROWS": 3})
    def test_row_limit(self):
        with self.assertRaises(RegistrationValidationError):
            RegistrationImporter(self.coach).run(self.rows)


class RegistrationExportTests(TestCase):
    def setUp(self):
        self.event = make_event()
        engine = TeamFormationEngine()
        self.a = make_student("a", real_name="张三")
        self.b = make_student("b", real_name="李四")
        self.c = make_student("c", real_name="王五")
        self.d = make_student("d", real_name="赵六")

        _, self.team = engine.create_team(self.a, self.event, "接力赛", team_name="Rockets", group="M12")
        engine.join_team(self.b, self.team.invite_code)
        engine.register_individual(self.c, self.event, [{"game_type": "短距离", "group": "W12"}])
        reg = engine.register_individual(self.d, self.event, [{"game_type": "短距离"}])
        engine.cancel_registration(self.d, reg)

    def test_export_rows_flatten_entries(self):
        rows = export_rows(self.event)

        self.assertEqual(len(rows), 3)
        relay = [r for r in rows if r["gameType"] == "接力赛"]
        self.assertEqual(
            [(r["name"], r["runOrder"], r["captain"], r["teamName"]) for r in relay],
            [("张三", 1, True, "Rockets"), ("李四", 2, False, "Rockets")],
        )
        self.assertTrue(all(r["inviteCode"] == self.team.invite_code for r in relay))

        solo = [r for r in rows if r["gameType"] == "短距离"]
        self.assertEqual(solo, [{
            "name": "王五", "group": "W12", "gameType": "短距离", "teamName": "", "runOrder": "",
            "captain": False, "inviteCode": "", "status": EventRegistration.STATUS_PENDING,
        }])

    def test_render_csv(self):
        response = render_csv(self.event, export_rows(self.event))

        self.assertEqual(response["Content-Type"], "text/csv; charset=utf-8")
        lines = response.content.decode("utf-8-sig").splitlines()
        self.assertEqual(lines[0], ",".join(EXPORT_COLUMNS))
        self.assertEqual(len(lines), 4)
        self.assertTrue(lines[1].startswith("张三,M12,接力赛,Rockets,1,yes,"))
        self.assertTrue(lines[2].startswith("李四,M12,接力赛,Rockets,2,no,"))

    def test_render_xlsx(self):
        response = render_xlsx(self.event, export_rows(self.event))

        wb = load_workbook(io.BytesIO(response.content))
        ws = wb.active
        values = list(ws.iter_rows(values_only=True))
        self.assertEqual(list(values[0]), EXPORT_COLUMNS)
        self.assertEqual(len(values), 4)

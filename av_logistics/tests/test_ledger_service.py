import tempfile
import unittest
from pathlib import Path

from sqlalchemy import func, select

from av_logistics.tests.support import (
    add_equipment,
    add_event,
    add_user,
    make_session_factory,
    new_ticket,
    status_history,
)
from av_logistics.models.logistics_models import Equipment, EquipmentStatus, EventEquipment, Maintenance
from av_logistics.scripts import ledger_audit
from av_logistics.services import ledger_service as ledger
from av_logistics.services.errors import ConflictError, NotFoundError, ValidationError


class LedgerTestCase(unittest.TestCase):
    def setUp(self):
        self.engine, self.SessionLocal = make_session_factory()
        self.db = self.SessionLocal()
        self.admin = add_user(self.db, "ADMIN")
        self.technician = add_user(self.db, "TECHNICIEN")
        self.db.commit()

    def tearDown(self):
        self.db.close()
        self.engine.dispose()

    def assertWithinBounds(self, equipment):
        self.assertGreaterEqual(equipment.QuantityAvailable, 0)
        self.assertLessEqual(equipment.QuantityAvailable, equipment.QuantityTotal)


class StockTests(LedgerTestCase):
    def test_creation_logs_initial_stock(self):
        equipment = add_equipment(self.db, 10, self.admin.UserID)
        self.assertEqual(equipment.QuantityAvailable, 10)
        self.assertEqual(status_history(self.db, equipment.EquipmentID), [("DISPONIBLE", 10)])

    def test_creation_with_zero_total_logs_missing(self):
        equipment = add_equipment(self.db, 0, self.admin.UserID)
        self.assertEqual(equipment.QuantityAvailable, 0)
        self.assertEqual(status_history(self.db, equipment.EquipmentID), [("MANQUANT", 0)])

    def test_resize_preserves_outstanding_units(self):
        equipment = add_equipment(self.db, 5, self.admin.UserID)
        event = add_event(self.db, self.admin.UserID)
        ledger.reserve(self.db, event, equipment.EquipmentID, 3, self.admin.UserID)

        with self.assertRaises(ValidationError):
            ledger.resize_stock(self.db, equipment.EquipmentID, 2, self.admin.UserID)
        self.assertEqual((equipment.QuantityTotal, equipment.QuantityAvailable), (5, 2))

        ledger.resize_stock(self.db, equipment.EquipmentID, 8, self.admin.UserID)
        self.assertEqual((equipment.QuantityTotal, equipment.QuantityAvailable), (8, 5))

        ledger.resize_stock(self.db, equipment.EquipmentID, 4, self.admin.UserID)
        self.assertEqual((equipment.QuantityTotal, equipment.QuantityAvailable), (4, 1))
        self.db.commit()

        self.assertEqual(
            status_history(self.db, equipment.EquipmentID)[-2:],
            [("DISPONIBLE", 3), ("MANQUANT", 4)],
        )

    def test_removal_rejected_while_units_out(self):
        equipment = add_equipment(self.db, 2, self.admin.UserID)
        event = add_event(self.db, self.admin.UserID)
        reservation = ledger.reserve(self.db, event, equipment.EquipmentID, 1, self.admin.UserID)

        with self.assertRaises(ValidationError):
            ledger.ensure_removable(self.db, equipment.EquipmentID)

        ledger.remove_reservation(self.db, event.EventID, reservation.ReservationID, self.admin.UserID)
        self.assertIs(ledger.ensure_removable(self.db, equipment.EquipmentID), equipment)

    def test_lock_missing_equipment(self):
        with self.assertRaises(NotFoundError):
            ledger.lock_equipment(self.db, 999)


class ReservationTests(LedgerTestCase):
    def test_reserve_then_return_restores_availability(self):
        equipment = add_equipment(self.db, 10, self.admin.UserID)
        other_event = add_event(self.db, self.admin.UserID, "Concert")
        ledger.reserve(self.db, other_event, equipment.EquipmentID, 2, self.admin.UserID)
        self.assertEqual(equipment.QuantityAvailable, 8)

        event = add_event(self.db, self.admin.UserID)
        reservation = ledger.reserve(self.db, event, equipment.EquipmentID, 5, self.admin.UserID)
        self.assertEqual(equipment.QuantityAvailable, 3)
        self.assertEqual(reservation.Status, "RESERVE")

        ledger.return_reservation(self.db, event.EventID, reservation.ReservationID, 5, self.admin.UserID)
        self.db.commit()

        self.assertEqual(equipment.QuantityAvailable, 8)
        self.assertEqual(reservation.QuantityReturned, 5)
        self.assertEqual(reservation.Status, "RETOURNE")
        self.assertEqual(
            status_history(self.db, equipment.EquipmentID)[-2:],
            [("EN_LOCATION", 5), ("DISPONIBLE", 5)],
        )
        entry = self.db.execute(
            select(EquipmentStatus).order_by(EquipmentStatus.StatusID.desc())
        ).scalars().first()
        self.assertEqual(entry.RelatedEventID, event.EventID)

    def test_over_reservation_leaves_state_unchanged(self):
        equipment = add_equipment(self.db, 4, self.admin.UserID)
        event = add_event(self.db, self.admin.UserID)
        before = status_history(self.db, equipment.EquipmentID)

        with self.assertRaises(ValidationError) as ctx:
            ledger.reserve(self.db, event, equipment.EquipmentID, 5, self.admin.UserID)
        self.assertIn("Insufficient quantity available", ctx.exception.message)

        self.db.commit()
        self.assertEqual(equipment.QuantityAvailable, 4)
        self.assertEqual(status_history(self.db, equipment.EquipmentID), before)
        count = self.db.execute(select(func.count(EventEquipment.ReservationID))).scalar()
        self.assertEqual(count, 0)

    def test_zero_quantity_rejected(self):
        equipment = add_equipment(self.db, 4, self.admin.UserID)
        event = add_event(self.db, self.admin.UserID)
        with self.assertRaises(ValidationError):
            ledger.reserve(self.db, event, equipment.EquipmentID, 0, self.admin.UserID)

    def test_duplicate_reservation_conflicts(self):
        equipment = add_equipment(self.db, 10, self.admin.UserID)
        event = add_event(self.db, self.admin.UserID)
        ledger.reserve(self.db, event, equipment.EquipmentID, 2, self.admin.UserID)

        with self.assertRaises(ConflictError) as ctx:
            ledger.reserve(self.db, event, equipment.EquipmentID, 1, self.admin.UserID)
        self.assertEqual(ctx.exception.status_code, 409)
        self.assertEqual(equipment.QuantityAvailable, 8)

    def test_return_then_remove_round_trip(self):
        equipment = add_equipment(self.db, 6, self.admin.UserID)
        event = add_event(self.db, self.admin.UserID)
        reservation = ledger.reserve(self.db, event, equipment.EquipmentID, 4, self.admin.UserID)
        ledger.return_reservation(self.db, event.EventID, reservation.ReservationID, 1, self.admin.UserID)
        self.assertEqual(equipment.QuantityAvailable, 3)
        self.assertEqual(reservation.Status, "RESERVE")

        released = ledger.remove_reservation(self.db, event.EventID, reservation.ReservationID, self.admin.UserID)
        self.db.commit()

        self.assertEqual(released, 3)
        self.assertEqual(equipment.QuantityAvailable, 6)
        self.assertEqual(
            status_history(self.db, equipment.EquipmentID),
            [("DISPONIBLE", 6), ("EN_LOCATION", 4), ("EN_LOCATION", 1), ("DISPONIBLE", 3)],
        )

    def test_return_more_than_outstanding_rejected(self):
        equipment = add_equipment(self.db, 6, self.admin.UserID)
        event = add_event(self.db, self.admin.UserID)
        reservation = ledger.reserve(self.db, event, equipment.EquipmentID, 2, self.admin.UserID)

        with self.assertRaises(ValidationError) as ctx:
            ledger.return_reservation(self.db, event.EventID, reservation.ReservationID, 3, self.admin.UserID)
        self.assertEqual(ctx.exception.message, "Cannot return 3 items. Only 2 items can be returned.")
        self.assertEqual(equipment.QuantityAvailable, 4)

    def test_reservation_must_belong_to_event(self):
        equipment = add_equipment(self.db, 6, self.admin.UserID)
        event = add_event(self.db, self.admin.UserID)
        other = add_event(self.db, self.admin.UserID, "Other")
        reservation = ledger.reserve(self.db, event, equipment.EquipmentID, 2, self.admin.UserID)

        with self.assertRaises(NotFoundError):
            ledger.remove_reservation(self.db, other.EventID, reservation.ReservationID, self.admin.UserID)

    def test_modify_moves_counter_by_delta(self):
        equipment = add_equipment(self.db, 10, self.admin.UserID)
        event = add_event(self.db, self.admin.UserID)
        reservation = ledger.reserve(self.db, event, equipment.EquipmentID, 3, self.admin.UserID)

        ledger.modify_reservation(
            self.db, event.EventID, reservation.ReservationID, self.admin.UserID, quantity_reserved=5
        )
        self.assertEqual(equipment.QuantityAvailable, 5)

        ledger.modify_reservation(
            self.db, event.EventID, reservation.ReservationID, self.admin.UserID, quantity_reserved=2
        )
        self.assertEqual(equipment.QuantityAvailable, 8)

        ledger.modify_reservation(
            self.db, event.EventID, reservation.ReservationID, self.admin.UserID, quantity_returned=2
        )
        self.db.commit()
        self.assertEqual(equipment.QuantityAvailable, 10)
        self.assertEqual(reservation.Status, "RETOURNE")
        self.assertEqual(
            status_history(self.db, equipment.EquipmentID)[1:],
            [("EN_LOCATION", 3), ("EN_LOCATION", 2), ("EN_LOCATION", 3), ("DISPONIBLE", 2)],
        )

    def test_modify_rejections_keep_state(self):
        equipment = add_equipment(self.db, 10, self.admin.UserID)
        event = add_event(self.db, self.admin.UserID)
        reservation = ledger.reserve(self.db, event, equipment.EquipmentID, 3, self.admin.UserID)
        ledger.return_reservation(self.db, event.EventID, reservation.ReservationID, 2, self.admin.UserID)

        cases = [
            {"quantity_reserved": 20},
            {"quantity_reserved": 1},
            {"quantity_returned": 4},
            {"quantity_returned": -1},
            {"status": "RETOURNE"},
        ]
        for changes in cases:
            with self.subTest(changes=changes):
                with self.assertRaises(ValidationError):
                    ledger.modify_reservation(
                        self.db, event.EventID, reservation.ReservationID, self.admin.UserID, **changes
                    )
                self.assertEqual(equipment.QuantityAvailable, 9)
                self.assertEqual((reservation.QuantityReserved, reservation.QuantityReturned), (3, 2))

    def test_lowering_returned_reopens_reservation(self):
        equipment = add_equipment(self.db, 4, self.admin.UserID)
        event = add_event(self.db, self.admin.UserID)
        reservation = ledger.reserve(self.db, event, equipment.EquipmentID, 2, self.admin.UserID)
        ledger.return_reservation(self.db, event.EventID, reservation.ReservationID, 2, self.admin.UserID)
        self.assertEqual(reservation.Status, "RETOURNE")

        ledger.modify_reservation(
            self.db, event.EventID, reservation.ReservationID, self.admin.UserID, quantity_returned=1
        )
        self.assertEqual(reservation.Status, "LIVRE")
        self.assertEqual(equipment.QuantityAvailable, 3)

    def test_release_event_drops_every_reservation(self):
        first = add_equipment(self.db, 5, self.admin.UserID, name="Speaker")
        second = add_equipment(self.db, 3, self.admin.UserID, name="Projector")
        event = add_event(self.db, self.admin.UserID)
        ledger.reserve(self.db, event, first.EquipmentID, 4, self.admin.UserID)
        reservation = ledger.reserve(self.db, event, second.EquipmentID, 3, self.admin.UserID)
        ledger.return_reservation(self.db, event.EventID, reservation.ReservationID, 1, self.admin.UserID)

        released = ledger.release_event(self.db, event, self.admin.UserID)

        self.assertEqual(released, 6)
        self.assertEqual(first.QuantityAvailable, 5)
        self.assertEqual(second.QuantityAvailable, 3)
        remaining = self.db.execute(select(func.count(EventEquipment.ReservationID))).scalar()
        self.assertEqual(remaining, 0)


class MaintenanceTests(LedgerTestCase):
    def test_open_maintenance_blocks_reservation(self):
        equipment = add_equipment(self.db, 5, self.admin.UserID)
        event = add_event(self.db, self.admin.UserID)
        ticket = ledger.open_maintenance(
            self.db, new_ticket(equipment, self.technician.UserID), self.admin.UserID, "per_unit"
        )
        self.assertEqual(ticket.QuantityHeld, 1)
        self.assertEqual(equipment.QuantityAvailable, 4)

        with self.assertRaises(ValidationError) as ctx:
            ledger.reserve(self.db, event, equipment.EquipmentID, 1, self.admin.UserID)
        self.assertIn("under maintenance", ctx.exception.message)

        ledger.complete_maintenance(self.db, ticket, self.admin.UserID, solution_description="Replaced")
        self.assertEqual(equipment.QuantityAvailable, 5)
        ledger.reserve(self.db, event, equipment.EquipmentID, 1, self.admin.UserID)
        self.assertEqual(equipment.QuantityAvailable, 4)

    def test_no_available_unit_for_maintenance(self):
        equipment = add_equipment(self.db, 1, self.admin.UserID)
        ledger.open_maintenance(
            self.db, new_ticket(equipment, self.technician.UserID), self.admin.UserID, "per_unit"
        )
        self.assertEqual(equipment.QuantityAvailable, 0)

        with self.assertRaises(ValidationError):
            ledger.open_maintenance(
                self.db, new_ticket(equipment, self.technician.UserID), self.admin.UserID, "per_unit"
            )
        self.db.commit()
        count = self.db.execute(select(func.count(Maintenance.MaintenanceID))).scalar()
        self.assertEqual(count, 1)

    def test_all_units_policy_holds_and_restores_available_pool(self):
        equipment = add_equipment(self.db, 5, self.admin.UserID)
        event = add_event(self.db, self.admin.UserID)
        ledger.reserve(self.db, event, equipment.EquipmentID, 2, self.admin.UserID)

        ticket = ledger.open_maintenance(
            self.db, new_ticket(equipment, self.technician.UserID), self.admin.UserID, "all_units"
        )
        self.assertEqual(ticket.QuantityHeld, 3)
        self.assertEqual(equipment.QuantityAvailable, 0)

        ledger.complete_maintenance(self.db, ticket, self.admin.UserID)
        self.db.commit()
        self.assertEqual(equipment.QuantityAvailable, 3)
        self.assertEqual(ticket.Status, "TERMINE")
        self.assertIsNotNone(ticket.ActualEndDate)
        self.assertEqual(
            status_history(self.db, equipment.EquipmentID)[-2:],
            [("EN_MAINTENANCE", 3), ("DISPONIBLE", 3)],
        )

    def test_complete_twice_rejected(self):
        equipment = add_equipment(self.db, 2, self.admin.UserID)
        ticket = ledger.open_maintenance(
            self.db, new_ticket(equipment, self.technician.UserID), self.admin.UserID, "per_unit"
        )
        ledger.complete_maintenance(self.db, ticket, self.admin.UserID)

        with self.assertRaises(ValidationError):
            ledger.complete_maintenance(self.db, ticket, self.admin.UserID)
        self.assertEqual(equipment.QuantityAvailable, 2)

    def test_cancel_releases_held_units(self):
        equipment = add_equipment(self.db, 3, self.admin.UserID)
        ticket = ledger.open_maintenance(
            self.db, new_ticket(equipment, self.technician.UserID), self.admin.UserID, "per_unit"
        )
        ledger.cancel_maintenance(self.db, ticket, self.admin.UserID)
        self.db.commit()

        self.assertEqual(equipment.QuantityAvailable, 3)
        self.assertFalse(ledger.has_open_maintenance(self.db, equipment.EquipmentID))

    def test_reservation_rejected_when_nothing_available_under_maintenance(self):
        for policy, total in (("per_unit", 1), ("all_units", 3)):
            with self.subTest(policy=policy):
                equipment = add_equipment(self.db, total, self.admin.UserID, name=f"Light {policy}")
                event = add_event(self.db, self.admin.UserID, f"Show {policy}")
                ledger.open_maintenance(
                    self.db, new_ticket(equipment, self.technician.UserID), self.admin.UserID, policy
                )
                self.db.commit()
                self.assertEqual(equipment.QuantityAvailable, 0)
                before = status_history(self.db, equipment.EquipmentID)

                with self.assertRaises(ValidationError):
                    ledger.reserve(self.db, event, equipment.EquipmentID, 1, self.admin.UserID)
                self.db.commit()

                self.assertEqual(equipment.QuantityAvailable, 0)
                self.assertEqual(status_history(self.db, equipment.EquipmentID), before)

    def test_unknown_policy_rejected(self):
        self.assertEqual(ledger.resolve_maintenance_policy(None), "per_unit")
        self.assertEqual(ledger.resolve_maintenance_policy(" ALL_UNITS "), "all_units")
        with self.assertRaises(ValueError):
            ledger.resolve_maintenance_policy("half")


class StatusOverrideTests(LedgerTestCase):
    def test_override_rules(self):
        equipment = add_equipment(self.db, 5, self.admin.UserID)

        with self.assertRaises(ValidationError):
            ledger.apply_status_override(self.db, equipment.EquipmentID, "EN_LOCATION", 6, self.admin.UserID)
        with self.assertRaises(ValidationError):
            ledger.apply_status_override(self.db, equipment.EquipmentID, "DISPONIBLE", -1, self.admin.UserID)
        with self.assertRaises(ValidationError):
            ledger.apply_status_override(self.db, equipment.EquipmentID, "PERDU", 1, self.admin.UserID)

        ledger.apply_status_override(self.db, equipment.EquipmentID, "EN_MAINTENANCE", 10, self.admin.UserID)
        self.assertEqual(equipment.QuantityAvailable, 0)

        ledger.apply_status_override(self.db, equipment.EquipmentID, "DISPONIBLE", 3, self.admin.UserID)
        self.assertEqual(equipment.QuantityAvailable, 3)

        ledger.apply_status_override(self.db, equipment.EquipmentID, "DISPONIBLE", 10, self.admin.UserID)
        self.assertEqual(equipment.QuantityAvailable, 5)

        ledger.apply_status_override(self.db, equipment.EquipmentID, "MANQUANT", 2, self.admin.UserID)
        self.assertEqual(equipment.QuantityAvailable, 5)

        ledger.apply_status_override(self.db, equipment.EquipmentID, "EN_LOCATION", 2, self.admin.UserID)
        self.assertEqual(equipment.QuantityAvailable, 3)
        self.db.commit()

        self.assertEqual(
            status_history(self.db, equipment.EquipmentID)[1:],
            [
                ("EN_MAINTENANCE", 10),
                ("DISPONIBLE", 3),
                ("DISPONIBLE", 10),
                ("MANQUANT", 2),
                ("EN_LOCATION", 2),
            ],
        )

    def test_manual_maintenance_blocks_until_given_back(self):
        equipment = add_equipment(self.db, 4, self.admin.UserID)
        event = add_event(self.db, self.admin.UserID)
        ledger.apply_status_override(self.db, equipment.EquipmentID, "EN_MAINTENANCE", 1, self.admin.UserID)
        self.assertEqual(equipment.QuantityManualMaintenance, 1)
        self.assertTrue(ledger.reconcile(self.db, equipment)["isConsistent"])

        with self.assertRaises(ValidationError) as ctx:
            ledger.reserve(self.db, event, equipment.EquipmentID, 1, self.admin.UserID)
        self.assertIn("under maintenance", ctx.exception.message)

        ledger.apply_status_override(self.db, equipment.EquipmentID, "DISPONIBLE", 1, self.admin.UserID)
        self.assertEqual(equipment.QuantityManualMaintenance, 0)
        ledger.reserve(self.db, event, equipment.EquipmentID, 2, self.admin.UserID)
        self.assertEqual(equipment.QuantityAvailable, 2)

    def test_status_history_survives_equipment_deletion(self):
        equipment = add_equipment(self.db, 2, self.admin.UserID)
        ledger.apply_status_override(self.db, equipment.EquipmentID, "MANQUANT", 1, self.admin.UserID)
        equipment_id = equipment.EquipmentID

        self.db.delete(ledger.ensure_removable(self.db, equipment_id))
        self.db.commit()

        self.assertEqual(status_history(self.db, equipment_id), [("DISPONIBLE", 2), ("MANQUANT", 1)])


class InvariantTests(LedgerTestCase):
    def test_bounds_and_reconciliation_hold_across_a_sequence(self):
        equipment = add_equipment(self.db, 8, self.admin.UserID)
        gala = add_event(self.db, self.admin.UserID, "Gala")
        concert = add_event(self.db, self.admin.UserID, "Concert")

        steps = [
            lambda: ledger.reserve(self.db, gala, equipment.EquipmentID, 3, self.admin.UserID),
            lambda: ledger.reserve(self.db, concert, equipment.EquipmentID, 4, self.admin.UserID),
            lambda: ledger.reserve(self.db, concert, equipment.EquipmentID, 1, self.admin.UserID),
            lambda: ledger.open_maintenance(
                self.db, new_ticket(equipment, self.technician.UserID), self.admin.UserID, "per_unit"
            ),
            lambda: ledger.return_reservation(self.db, gala.EventID, self._reservation_id(gala), 2, self.admin.UserID),
            lambda: ledger.resize_stock(self.db, equipment.EquipmentID, 1, self.admin.UserID),
            lambda: ledger.resize_stock(self.db, equipment.EquipmentID, 9, self.admin.UserID),
            lambda: ledger.modify_reservation(
                self.db, concert.EventID, self._reservation_id(concert), self.admin.UserID, quantity_reserved=6
            ),
            lambda: ledger.remove_reservation(self.db, gala.EventID, self._reservation_id(gala), self.admin.UserID),
        ]
        for step in steps:
            try:
                step()
            except (ValidationError, ConflictError):
                pass
            self.db.flush()
            self.assertWithinBounds(equipment)
            self.assertTrue(ledger.reconcile(self.db, equipment)["isConsistent"])

        report = ledger.reconcile(self.db, equipment)
        self.assertEqual(report["quantityTotal"], 9)
        self.assertEqual(report["quantityOutstanding"], 6)
        self.assertEqual(report["quantityInMaintenance"], 1)
        self.assertEqual(report["quantityAvailable"], 2)

    def _reservation_id(self, event):
        return self.db.execute(
            select(EventEquipment.ReservationID).where(EventEquipment.EventID == event.EventID)
        ).scalar()

    def test_audit_script_flags_drifted_counter(self):
        steady = add_equipment(self.db, 4, self.admin.UserID, name="Mixer")
        drifted = add_equipment(self.db, 4, self.admin.UserID, name="Amplifier")
        event = add_event(self.db, self.admin.UserID)
        ledger.reserve(self.db, event, steady.EquipmentID, 2, self.admin.UserID)
        ledger.apply_status_override(self.db, drifted.EquipmentID, "EN_LOCATION", 1, self.admin.UserID)
        self.db.commit()

        results = {row.name: row.ok for row in ledger_audit.run_availability_checks(self.db)}
        self.assertEqual(
            results,
            {f"equipment:{steady.Reference}": True, f"equipment:{drifted.Reference}": False},
        )
        self.assertTrue(all(row.ok for row in ledger_audit.run_integrity_checks(self.db)))


class ConcurrentSessionTests(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        db_path = Path(self.tmpdir.name) / "ledger.db"
        self.engine, self.SessionLocal = make_session_factory(f"sqlite+pysqlite:///{db_path}")
        with self.SessionLocal() as db:
            self.admin_id = add_user(db, "ADMIN").UserID
            self.technician_id = add_user(db, "TECHNICIEN").UserID
            db.commit()

    def tearDown(self):
        self.engine.dispose()
        self.tmpdir.cleanup()

    def _report(self, equipment_id):
        with self.SessionLocal() as db:
            return ledger.reconcile(db, db.get(Equipment, equipment_id))

    def test_stale_ticket_cannot_be_completed_twice(self):
        with self.SessionLocal() as db:
            equipment = add_equipment(db, 5, self.admin_id)
            ticket = ledger.open_maintenance(db, new_ticket(equipment, self.technician_id), self.admin_id, "per_unit")
            db.commit()
            equipment_id, ticket_id = equipment.EquipmentID, ticket.MaintenanceID

        first = self.SessionLocal()
        second = self.SessionLocal()
        try:
            stale = first.get(Maintenance, ticket_id)
            self.assertEqual(stale.Status, "EN_ATTENTE")

            ledger.complete_maintenance(second, second.get(Maintenance, ticket_id), self.admin_id)
            second.commit()

            with self.assertRaises(ValidationError):
                ledger.complete_maintenance(first, stale, self.admin_id)
            first.rollback()
        finally:
            first.close()
            second.close()

        report = self._report(equipment_id)
        self.assertEqual(report["quantityAvailable"], 5)
        self.assertTrue(report["isConsistent"])

    def test_stale_reservation_cannot_be_returned_twice(self):
        with self.SessionLocal() as db:
            equipment = add_equipment(db, 10, self.admin_id)
            event = add_event(db, self.admin_id)
            reservation = ledger.reserve(db, event, equipment.EquipmentID, 5, self.admin_id)
            db.commit()
            equipment_id, event_id, reservation_id = equipment.EquipmentID, event.EventID, reservation.ReservationID

        first = self.SessionLocal()
        second = self.SessionLocal()
        try:
            stale = ledger.get_reservation(first, event_id, reservation_id)
            self.assertEqual(stale.QuantityReturned, 0)

            ledger.return_reservation(second, event_id, reservation_id, 5, self.admin_id)
            second.commit()

            with self.assertRaises(ValidationError) as ctx:
                ledger.return_reservation(first, event_id, reservation_id, 5, self.admin_id)
            self.assertEqual(ctx.exception.message, "Cannot return 5 items. Only 0 items can be returned.")
            first.rollback()
        finally:
            first.close()
            second.close()

        report = self._report(equipment_id)
        self.assertEqual(report["quantityAvailable"], 10)
        self.assertTrue(report["isConsistent"])


if __name__ == "__main__":
    unittest.main()

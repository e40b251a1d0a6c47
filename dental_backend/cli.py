from __future__ import annotations

import argparse

from dental_backend.access_control import ROLES, can_access, first_allowed_path
from dental_backend.appointment_status import VALID_STATUSES, label_for
from dental_backend.auth_service import set_user_active
from dental_backend.config import configure_logging
from dental_backend.db import engine
from dental_backend.insurance_estimator import UNLIMITED_ANNUAL_MAX, estimate
from dental_backend.permissions import can_access_path, first_allowed_path_for
from dental_backend.seed import seed_base
from dental_backend.services import (
    init_db,
    list_clinics_flat,
    list_patients_flat,
    list_staff_flat,
    mark_notification_sent,
    pending_notifications,
)


def cmd_init(args: argparse.Namespace) -> None:
    init_db()
    seed_base()
    print("Database initialised and demo data seeded.")


def cmd_list(args: argparse.Namespace) -> None:
    if args.entity == "clinics":
        for c in list_clinics_flat():
            print(f"{c['id']} | {c['name']}")
        return
    if not args.clinic_id:
        raise SystemExit("--clinic-id is required for staff and patients")
    if args.entity == "staff":
        for u in list_staff_flat(args.clinic_id):
            print(f"{u['id']} | {u['username']} | {u['role']} | {u['full_name'] or '-'}")
    elif args.entity == "patients":
        for p in list_patients_flat(args.clinic_id):
            print(f"{p['id']} | {p['last_name']} {p['first_name']} | {p['email'] or '-'}")


def cmd_estimate(args: argparse.Namespace) -> None:
    annual_max = UNLIMITED_ANNUAL_MAX if args.annual_max is None else args.annual_max
    result = estimate(args.fee, args.coverage, args.deductible, annual_max)
    print(f"Insurance estimate: {result.insurance_estimate:.2f}")
    print(f"Patient portion:    {result.patient_portion:.2f}")
    if result.capped_by_annual_max:
        print("Capped by the annual maximum.")


def cmd_status_label(args: argparse.Namespace) -> None:
    print(label_for(args.status))


def cmd_can_access(args: argparse.Namespace) -> None:
    """Role rule alone, or role + section list when --sections is given."""
    if args.sections:
        user = argparse.Namespace(role=args.role, allowed_sections=args.sections.split(","), limits=None)
        allowed = can_access_path(user, args.path)
        redirect = first_allowed_path_for(user)
    else:
        allowed = can_access(args.role, args.path)
        redirect = first_allowed_path(args.role)
    print("allowed" if allowed else f"denied (redirect to {redirect})")


def cmd_db_path(args: argparse.Namespace) -> None:
    print("ENGINE URL:", engine.url)
    print("DB FILE   :", engine.url.database)


def cmd_deactivate_user(args: argparse.Namespace) -> None:
    ok = set_user_active(args.username, active=args.activate)
    print("Updated." if ok else "User not found.")


def cmd_notifications(args: argparse.Namespace) -> None:
    """
    Stand-in for the external notification sink:
    - reads pending notifications
    - prints them
    - optionally marks them sent
    """
    pending = pending_notifications(args.clinic_id, limit=args.limit)
    if not pending:
        print("No pending notifications.")
        return

    for n in pending:
        print(f"[{n.id}] {n.type.value} | {n.created_at.isoformat()} | {n.message}")
        if args.mark_sent:
            mark_notification_sent(n.id)

    if args.mark_sent:
        print("Notifications marked as sent.")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="dental_cli", description="Dental practice CLI (admin and external-system tasks)")
    sub = p.add_subparsers(required=True)

    p_init = sub.add_parser("init", help="Create the DB and load demo data")
    p_init.set_defaults(func=cmd_init)

    p_list = sub.add_parser("list", help="List entities")
    p_list.add_argument("entity", choices=["clinics", "staff", "patients"])
    p_list.add_argument("--clinic-id", default=None)
    p_list.set_defaults(func=cmd_list)

    p_est = sub.add_parser("estimate", help="Insurance/patient split for a fee")
    p_est.add_argument("--fee", type=float, required=True)
    p_est.add_argument("--coverage", type=float, default=80.0, help="Coverage percentage (0-100)")
    p_est.add_argument("--deductible", type=float, default=0.0, help="Deductible remaining")
    p_est.add_argument("--annual-max", type=float, default=None, help="Annual maximum remaining (omit = no cap)")
    p_est.set_defaults(func=cmd_estimate)

    p_label = sub.add_parser("status-label", help="Display label for an appointment status")
    p_label.add_argument("status", help=f"one of: {', '.join(VALID_STATUSES)}")
    p_label.set_defaults(func=cmd_status_label)

    p_acc = sub.add_parser("can-access", help="Check a role against a route")
    p_acc.add_argument("--role", required=True, choices=ROLES)
    p_acc.add_argument("--path", required=True)
    p_acc.add_argument("--sections", default=None, help="Comma-separated allowed section keys")
    p_acc.set_defaults(func=cmd_can_access)

    p_not = sub.add_parser("notifications", help="Read and 'send' pending notifications")
    p_not.add_argument("--clinic-id", default=None)
    p_not.add_argument("--limit", type=int, default=50)
    p_not.add_argument("--mark-sent", action="store_true", help="Mark as sent after printing")
    p_not.set_defaults(func=cmd_notifications)

    p_db = sub.add_parser("db-path", help="Show the database in use")
    p_db.set_defaults(func=cmd_db_path)

    p_deact = sub.add_parser("deactivate-user", help="Disable (or re-enable) a login")
    p_deact.add_argument("username")
    p_deact.add_argument("--activate", action="store_true", help="Re-enable instead")
    p_deact.set_defaults(func=cmd_deactivate_user)

    return p


def main(argv: list[str] | None = None) -> None:
    configure_logging()
    parser = build_parser()
    args = parser.parse_args(argv)
    init_db()
    args.func(args)


if __name__ == "__main__":
    main()

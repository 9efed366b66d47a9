#!/usr/bin/env python3
"""
Seed a development database with SACCOs, users and monthly returns.

Drops all tables, recreates them, bootstraps the first System_Admin and
files a quarter of returns in assorted review states so the compliance
aggregates have something to show.

Seeded accounts carry an unusable credential hash; set real credentials
through the authentication collaborator.

Usage:
    python3 scripts/seed_data.py
    SRDCS_CONFIG=local.yaml python3 scripts/seed_data.py
    DATABASE_URL=sqlite:///srdcs.db python3 scripts/seed_data.py
"""

import sys
from datetime import UTC, date, datetime
from decimal import Decimal
from pathlib import Path

# ---------------------------------------------------------------------------
# Project root on sys.path
# ---------------------------------------------------------------------------
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------
SEED_TIME = datetime(2025, 6, 15, 9, 0, 0, tzinfo=UTC)
UNUSABLE_HASH = "!unusable"

SACCOS = (
    ("CS/2019/0412", "Mwangaza Teachers Sacco", "Nyeri", "Grace Wanjiku", "+254700111222"),
    ("CS/2015/0078", "Pwani Fishers Sacco", "Mombasa", "Ali Hassan", "+254711333444"),
    ("CS/2021/1190", "Rift Valley Dairy Sacco", "Nakuru", "Peter Kiprono", "+254722555666"),
)

# Months filed per SACCO, oldest first, with the final review state.
FILINGS = (
    ("Approved", "Approved", "Under_Review"),
    ("Approved", "Flagged", None),
    (None, None, "Draft"),
)


def _figures(seed: int):
    from sacco_kernel.domain.dtos import FinancialDataInput

    base = Decimal(1_000_000 * (seed + 1))
    return FinancialDataInput(
        share_capital=base,
        member_deposits=base * 3,
        total_assets=base * 5,
        total_liabilities=base * 3 + Decimal("125000.50"),
        total_members=400 + seed * 150,
        new_members=12 + seed,
        exited_members=3,
        total_loans_cumulative=base * 8,
        loans_issued_monthly=base / 4,
        loans_repaid_monthly=base / 5,
        outstanding_loan_balance=base * 2,
        number_of_loanees=150 + seed * 40,
        interest_earned_monthly=Decimal("84500.00") + seed,
        par30=Decimal("4.50"),
        par60=Decimal("2.25"),
        par90=Decimal("1.10"),
        total_income_monthly=Decimal("120000.00"),
        total_expenses_monthly=Decimal("95000.75"),
    )


def main() -> int:
    from sacco_config import get_active_config
    from sacco_kernel.db.engine import (
        create_tables,
        drop_tables,
        init_engine_from_url,
        session_scope,
    )
    from sacco_kernel.domain.clock import DeterministicClock
    from sacco_kernel.domain.dtos import DocumentInput, DocumentType, SaccoInput, UserInput
    from sacco_kernel.domain.periods import add_months, normalize_reporting_month
    from sacco_kernel.domain.roles import Role
    from sacco_kernel.domain.workflow import ReviewDecision
    from sacco_kernel.logging_config import configure_logging
    from sacco_kernel.services import (
        ReturnWorkflowService,
        SaccoRegistryService,
        UserService,
    )

    config = get_active_config()
    configure_logging(level=config.logging.level)

    # -----------------------------------------------------------------
    # 1. Connect + reset
    # -----------------------------------------------------------------
    print()
    print(f"  [1/4] Connecting ({config.source})...")
    db = config.database
    try:
        init_engine_from_url(
            db.url,
            echo=db.echo,
            pool_size=db.pool_size,
            max_overflow=db.max_overflow,
            pool_timeout=db.pool_timeout,
            pool_recycle=db.pool_recycle,
        )
    except Exception as exc:
        print(f"  ERROR: {exc}", file=sys.stderr)
        return 1

    print("  [2/4] Dropping old tables and recreating schema...")
    drop_tables()
    create_tables()

    clock = DeterministicClock(SEED_TIME)
    current_month = normalize_reporting_month(SEED_TIME)
    months = tuple(add_months(current_month, -i) for i in (2, 1, 0))

    # -----------------------------------------------------------------
    # 2. Administrator, register, staff
    # -----------------------------------------------------------------
    print(f"  [3/4] Registering {len(SACCOS)} SACCOs and their staff...")
    with session_scope() as session:
        users = UserService(session, clock)
        registry = SaccoRegistryService(session, clock)

        admin_info = users.bootstrap_admin(UserInput(
            username="admin",
            role=Role.SYSTEM_ADMIN,
            credential_hash=UNUSABLE_HASH,
            first_name="System",
            last_name="Administrator",
            email="admin@srdcs.example",
        ))
        admin = users.get_actor(admin_info.id)

        analyst_info = users.register(UserInput(
            username="analyst",
            role=Role.ANALYST,
            credential_hash=UNUSABLE_HASH,
            first_name="Ministry",
            last_name="Analyst",
        ), admin)

        sacco_ids = []
        staff_ids = []
        for reg_no, name, county, contact, phone in SACCOS:
            sacco = registry.create(SaccoInput(
                registration_number=reg_no,
                name=name,
                county=county,
                contact_person=contact,
                phone=phone,
                registration_date=date(2015, 1, 1),
            ), admin)
            officer = users.register(UserInput(
                username=f"officer.{county.lower()}",
                role=Role.ACCOUNTS_OFFICER,
                credential_hash=UNUSABLE_HASH,
                first_name=contact.split()[0],
                last_name=contact.split()[-1],
                sacco_id=sacco.id,
            ), admin)
            sacco_ids.append(sacco.id)
            staff_ids.append(officer.id)

    # -----------------------------------------------------------------
    # 3. Returns
    # -----------------------------------------------------------------
    print(f"  [4/4] Filing returns for {months[0]:%b %Y} to {months[-1]:%b %Y}...")
    filed = 0
    with session_scope() as session:
        users = UserService(session, clock)
        workflow = ReturnWorkflowService(
            session, clock, max_document_bytes=config.documents.max_size_bytes
        )
        analyst = users.get_actor(analyst_info.id)

        for seed, (sacco_id, staff_id, plan) in enumerate(
            zip(sacco_ids, staff_ids, FILINGS)
        ):
            officer = users.get_actor(staff_id)
            for month, outcome in zip(months, plan):
                if outcome is None:
                    continue
                clock.advance(60)
                ret = workflow.create_draft(sacco_id, month, officer)
                workflow.attach_financial_data(ret.id, _figures(seed), officer)
                workflow.attach_document(ret.id, DocumentInput(
                    document_type=DocumentType.MANAGEMENT_REPORT,
                    file_name=f"report-{month:%Y-%m}.pdf",
                    storage_path=f"returns/{sacco_id}/{month:%Y-%m}/report.pdf",
                    size_bytes=248_331,
                ), officer)
                filed += 1
                if outcome == "Draft":
                    continue
                workflow.submit(ret.id, officer)
                workflow.begin_review(ret.id, analyst)
                if outcome == "Under_Review":
                    continue
                workflow.decide(
                    ret.id, ReviewDecision(outcome), "Seeded review", analyst
                )

    print()
    print(f"  Done. {len(SACCOS)} SACCOs, {filed} returns.")
    print("  Sign-in names: admin, analyst, "
          + ", ".join(f"officer.{c[2].lower()}" for c in SACCOS))
    print()
    return 0


if __name__ == "__main__":
    sys.exit(main())

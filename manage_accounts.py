#!/usr/bin/env python3
"""
Script to create and inspect accounts for the subscription service.

    python manage_accounts.py create alice@example.com [--admin] [--grant-pro]
    python manage_accounts.py list
    python manage_accounts.py token <account_id>
"""
import sys
from typing import Optional

from sqlalchemy.orm import Session

from app.core.database import SessionLocal, init_db
from app.middleware.auth import create_access_token
from app.models import Account
from app.services.admin_grants import AdminGrantManager
from app.services.subscription_records import SubscriptionRecordManager
from app.services.trial_lifecycle import TrialLifecycle

SYSTEM_ACTOR = "manage_accounts"


def provision(db: Session, account_id: str):
    """Create the subscription record for a new account and start its trial."""
    return TrialLifecycle.start_trial(db, account_id)


def create_account(db: Session, email: str, is_admin: bool = False, grant_pro: bool = False,
                   note: Optional[str] = None) -> dict:
    account = Account(email=email, is_admin=is_admin)
    db.add(account)
    db.commit()
    db.refresh(account)

    record = provision(db, account.id)
    if grant_pro:
        record = AdminGrantManager.grant(
            db, account.id, granted_by=SYSTEM_ACTOR, note=note or "Granted at account creation"
        )

    return {
        'id': account.id,
        'email': account.email,
        'is_admin': account.is_admin,
        'tier': record.tier,
        'status': record.status,
        'token': create_access_token(account.id),
    }


def list_accounts(db: Session):
    records = {r.account_id: r for r in SubscriptionRecordManager.list_all(db)}
    accounts = db.query(Account).order_by(Account.created_at.desc()).all()
    return [(account, records.get(account.id)) for account in accounts]


if __name__ == '__main__':
    import argparse

    parser = argparse.ArgumentParser(description='Account management for the subscription service')
    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    create_parser = subparsers.add_parser('create', help='Create and provision an account')
    create_parser.add_argument('email', help='Account email')
    create_parser.add_argument('--admin', action='store_true', help='Give the account the admin role')
    create_parser.add_argument('--grant-pro', action='store_true', help='Grant Pro permanently')
    create_parser.add_argument('--note', help='Note stored with the Pro grant')

    subparsers.add_parser('list', help='List accounts and their subscription state')

    token_parser = subparsers.add_parser('token', help='Issue a development token')
    token_parser.add_argument('account_id', help='Account ID')

    args = parser.parse_args()

    if SessionLocal is None:
        print("[ERROR] DB_URL is not set.")
        sys.exit(1)
    init_db()
    db = SessionLocal()

    try:
        if args.command == 'create':
            print(f"[*] Creating account '{args.email}'...")
            result = create_account(db, args.email, is_admin=args.admin, grant_pro=args.grant_pro, note=args.note)
            print("\n[OK] Account created!")
            print("=" * 60)
            print(f"ID:      {result['id']}")
            print(f"Email:   {result['email']}")
            print(f"Admin:   {result['is_admin']}")
            print(f"Plan:    {result['tier']}/{result['status']}")
            print("=" * 60)
            print("\n[+] Use in your requests:")
            print(f"   curl -H \"Authorization: Bearer {result['token']}\" http://localhost:8000/subscription")
            print()

        elif args.command == 'list':
            rows = list_accounts(db)
            if not rows:
                print("No accounts.")
            for account, record in rows:
                print(f"ID: {account.id}")
                print(f"  Email:   {account.email}")
                print(f"  Admin:   {account.is_admin}")
                if record is None:
                    print("  Plan:    (not provisioned)")
                else:
                    print(f"  Plan:    {record.tier}/{record.status}")
                    print(f"  Granted: {record.admin_granted_pro}")
                print()

        elif args.command == 'token':
            if db.get(Account, args.account_id) is None:
                print(f"[ERROR] Account {args.account_id} not found.")
                sys.exit(1)
            print(create_access_token(args.account_id))

        else:
            parser.print_help()
    finally:
        db.close()

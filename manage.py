"""Management script for database setup and sample data"""

import os

from flask import current_app
from flask.cli import FlaskGroup

from billflow import create_app
from billflow.extensions import create_tables, db
from billflow.models import BillingCycle, Currency, Package, PackageModule


def make_app():
    return create_app(os.getenv("APP_ENV", "development"))


cli = FlaskGroup(create_app=make_app)


@cli.command("init-db")
def init_db():
    """Create all database tables"""
    create_tables(current_app)
    print("✅ Database initialized successfully!")


@cli.command("drop-db")
def drop_db():
    """Drop all database tables"""
    confirmation = input("⚠️  Are you sure you want to drop all tables? (yes/no): ").lower()

    if confirmation == "yes":
        db.drop_all()
        print("✅ Database dropped successfully!")
    else:
        print("❌ Operation cancelled.")


@cli.command("seed-db")
def seed_db():
    """Seed the catalog with a currency, modules and sample packages"""
    if Currency.query.filter_by(currency_code="USD").first():
        print("⚠️  Sample currency already exists. Skipping currency creation.")
    else:
        db.session.add(
            Currency(currency_code="USD", currency_name="US Dollar", currency_symbol="$", exchange_rate=1)
        )
        print("✅ Sample currency created.")

    if PackageModule.query.count() == 0:
        db.session.add_all([
            PackageModule(
                name="Matters",
                included_features=[{"name": "Matter tracking", "price": 0}, {"name": "Document storage", "price": 5}],
            ),
            PackageModule(
                name="Billing",
                included_features=[{"name": "Time billing", "price": 0}, {"name": "Installments", "price": 8}],
            ),
        ])
        print("✅ Sample modules created.")

    if Package.query.count() == 0:
        add_ons = [
            {
                "module": "Matters",
                "feature": "Document storage",
                "monthlyPrice": 5,
                "yearlyPrice": 50,
                "discount": 0,
                "description": "Extra document storage",
            },
            {
                "module": "Billing",
                "feature": "Installments",
                "monthlyPrice": 8,
                "yearlyPrice": 80,
                "discount": 10,
                "description": "Installment plans for invoices",
            },
        ]
        db.session.add_all([
            Package(
                name="Starter",
                description="Core features for small practices",
                price_monthly=29,
                price_yearly=290,
                discount=0,
                billing_cycle=BillingCycle.MONTHLY,
                extra_add_on=add_ons,
            ),
            Package(
                name="Professional",
                description="Everything in Starter plus reporting",
                price_monthly=99,
                price_yearly=990,
                discount=10,
                billing_cycle=BillingCycle.ANNUAL,
                extra_add_on=add_ons,
            ),
        ])
        print("✅ Sample packages created.")
    else:
        print("⚠️  Sample packages already exist. Skipping package creation.")

    db.session.commit()
    print("✅ Database seeded successfully!")


if __name__ == "__main__":
    cli()

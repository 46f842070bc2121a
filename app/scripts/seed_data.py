import os
import sys
import asyncio
import logging
from datetime import timedelta
from decimal import Decimal

from sqlalchemy import select

# Needed to import core and models when run as a script
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.clock import utc_now
from core.db import AsyncSessionLocal, engine, init_models
from core.logging import setup_logging
from models import Driver, FleetTransaction, Profile, Vehicle
from models.enums import DocumentKind, DocumentStatus, PaymentMethod, TransactionType, category_for

logger = logging.getLogger(__name__)

DEMO_PHONE = os.getenv("SEED_PHONE", "9876543210")


async def seed():
    await init_models()

    async with AsyncSessionLocal() as db:
        existing = (await db.execute(select(Profile).where(Profile.phone == DEMO_PHONE))).scalar_one_or_none()
        if existing:
            logger.info(f"Demo owner {DEMO_PHONE} already exists; nothing to do")
            return

        now = utc_now()
        owner = Profile(
            phone=DEMO_PHONE,
            full_name="Demo Owner",
            company_name="Demo Transport Co",
            pan_number="ABCDE1234F",
            is_onboarded=True,
            subscription_active=True,
            subscription_tier="trial",
            subscription_expires_at=now + timedelta(days=30),
            trial_used=True,
        )
        db.add(owner)
        await db.flush()

        vehicles = []
        for offset, (number, model) in enumerate([("KA01AB1234", "Tata Ace"), ("KA05MN4321", "Ashok Leyland Dost")]):
            vehicle = Vehicle(
                owner_id=owner.id,
                registration_number=number,
                model=model,
                prepaid_balance=Decimal("1500.00"),
                fastag_linked=True,
                created_at=now - timedelta(days=10 - offset),
            )
            vehicle.documents = Vehicle.blank_documents()
            # First vehicle fully compliant
            if offset == 0:
                for document in vehicle.documents:
                    document.status = DocumentStatus.UPLOADED.value
            vehicles.append(vehicle)
        db.add_all(vehicles)
        await db.flush()

        driver = Driver(
            owner_id=owner.id,
            name="Ravi Kumar",
            license_number="KA0120201234",
            phone="9123456780",
            assigned_vehicle_ids=[vehicles[0].id],
            created_at=now,
        )
        db.add(driver)
        await db.flush()
        vehicles[0].driver_id = driver.id

        entries = [
            (0, TransactionType.REVENUE, "4500.00", "Bengaluru to Mysuru trip"),
            (0, TransactionType.FUEL, "1800.00", "Diesel refill"),
            (1, TransactionType.TOLL, "235.00", "NICE road toll"),
            (1, TransactionType.REVENUE, "3200.00", "Local delivery run"),
        ]
        for day, (index, tx_type, amount, description) in enumerate(entries):
            db.add(FleetTransaction(
                owner_id=owner.id,
                date=(now - timedelta(days=day)).date(),
                vehicle_id=vehicles[index].id,
                vehicle_number=vehicles[index].registration_number,
                type=tx_type.value,
                amount=Decimal(amount),
                description=description,
                category=category_for(tx_type).value,
                payment_method=PaymentMethod.UPI.value,
                is_manual=True,
                created_at=now,
            ))

        await db.commit()
        logger.info(
            f"Seeded demo owner {DEMO_PHONE} with {len(vehicles)} vehicles, 1 driver and "
            f"{len(entries)} transactions ({len(DocumentKind)} document slots per vehicle)"
        )

    await engine.dispose()


if __name__ == "__main__":
    setup_logging()
    asyncio.run(seed())

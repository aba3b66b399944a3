# scripts/seed-data.py
"""Seed database with demo data"""
import asyncio

from app.db.database import async_session_local, init_db, transaction
from app.db.repositories.user_repository import UserRepository
from app.services.generation_service import GenerationService
from app.services.token_ledger import TokenLedger
from app.services.user_service import UserService


async def seed_data():
    """Seed database with demo data"""
    await init_db()

    async with async_session_local() as session:
        if await UserRepository(session).get_by_email("demo@genmeter.io"):
            print("Demo data already present")
            return

        user = await UserService(session).provision_user(
            email="demo@genmeter.io",
            full_name="Demo User",
            provider="demo",
        )
        print(f"Created user: {user.email} ({user.token_balance} tokens)")

        admin = await UserService(session).provision_user(
            email="admin@genmeter.io",
            full_name="Admin User",
            provider="demo",
            signup_tokens=0,
        )
        await UserRepository(session).update(admin.id, {"is_admin": True})
        await session.commit()
        print(f"Created admin: {admin.email}")

        async with transaction(session):
            user = await TokenLedger(session).grant_free_tokens(user.id, 10, "Demo top-up")
        print(f"Granted demo tokens, balance now {user.token_balance}")

        generation = await GenerationService(session).create_generation(
            user_id=user.id,
            product_image_ref="https://storage.example.com/demo/product.png",
            prompt="Model wearing the product on a sunny street",
            parameters={"model": "flux-dev", "aspect_ratio": "1:1"},
        )
        print(f"Created generation: {generation.id}")

        print("\nUse these headers against the API:")
        print(f"X-User-ID: {user.id}    (demo user)")
        print(f"X-User-ID: {admin.id}    (admin)")


if __name__ == "__main__":
    asyncio.run(seed_data())

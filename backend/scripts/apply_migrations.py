import asyncio
import sys

from fraterna.infra import postgres
from fraterna.infra.migrate import apply_pending


async def main() -> None:
    try:
        applied = await apply_pending()
    finally:
        await postgres.close_pool()
    if applied:
        print(f"Applied migrations: {', '.join(applied)}")
    else:
        print("Database schema is up to date.")


if __name__ == "__main__":
    if sys.platform == 'win32':
        asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())
    asyncio.run(main())

import asyncio
import sys
import tempfile
from decimal import Decimal
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(REPO_ROOT))

from supervisor_bot.admin import GroupAdmin
from supervisor_bot.handlers import router
from supervisor_bot.kvstore import SqliteKeyValueStore
from supervisor_bot.pricing import estimate_cost
from supervisor_bot.store import GroupStore


async def _run_checks() -> None:
    with tempfile.TemporaryDirectory() as tmp:
        store = GroupStore(SqliteKeyValueStore(str(Path(tmp) / "smoke.sqlite3")))
        if not await store.health_check():
            raise RuntimeError("Store health check failed")

        admin = GroupAdmin(store)
        await admin.add_group("-100", "Smoke group", "Deutsch")
        record = await admin.add_credit("-100", "1.50")
        if record.credit_purchased != Decimal("1.5"):
            raise RuntimeError("Credit was not recorded")
        if not await admin.remove_group("-100"):
            raise RuntimeError("Group removal failed")

    if router is None:
        raise RuntimeError("Handlers router failed to initialize")

    estimate = estimate_cost("hello world this is fine", 200, "gpt-4o-mini")
    if estimate.estimated_cost <= 0:
        raise ValueError("Cost estimate must be positive")


def main() -> int:
    try:
        asyncio.run(_run_checks())
    except Exception as exc:  # noqa: BLE001 - keep broad to surface any failure
        print(f"Smoke check failed: {exc}")
        return 1

    print("Smoke check OK")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

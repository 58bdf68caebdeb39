import argparse
import asyncio
import sys
from typing import Iterable, List, Tuple

from fpedia.config import get_settings
from fpedia.infra.sql import GatedAsyncSession, make_async_engine
from fpedia.model import catalog
from fpedia.model import stock as stock_store
from fpedia.model.db import Base


def parse_accounts(lines: Iterable[str]) -> Tuple[List[Tuple[str, str]], List[int]]:
    """`email:password` or `email|password` per line -> (pairs, bad line numbers)."""
    pairs, bad = [], []
    for n, raw in enumerate(lines, start=1):
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        sep = "|" if "|" in line else ":"
        email, _, password = line.partition(sep)
        email, password = email.strip(), password.strip()
        if email and password:
            pairs.append((email, password))
        else:
            bad.append(n)
    return pairs, bad


async def run(product_id: str, path: str) -> int:
    settings = get_settings()
    engine, SessionAsync, _, gated = make_async_engine(settings.DATABASE_URL)
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        with open(path, encoding="utf-8") as f:
            pairs, bad = parse_accounts(f)
        for n in bad:
            print(f"⚠️  line {n}: expected email:password, skipped")
        if not pairs:
            print("nothing to import")
            return 1

        async with SessionAsync() as session:
            db = GatedAsyncSession(session=session, gated=gated)
            if await catalog.get_product(db, product_id) is None:
                print(f"unknown product {product_id}")
                return 1
            n = await stock_store.import_stock(
                db, product_id, pairs, settings.ENCRYPTION_KEY
            )
        print(f"✅ imported {n} accounts for {product_id}")
        return 0
    finally:
        await engine.dispose()


def main():
    ap = argparse.ArgumentParser(
        description="Bulk import credential stock for a product."
    )
    ap.add_argument("--product-id", required=True, help="target product id")
    ap.add_argument(
        "--file", required=True,
        help="text file, one email:password (or email|password) per line",
    )
    args = ap.parse_args()
    sys.exit(asyncio.run(run(args.product_id, args.file)))


if __name__ == "__main__":
    main()

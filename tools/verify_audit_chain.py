"""Verify stored audit hash chains (for cron/CronJob execution)."""

from __future__ import annotations

import argparse
import asyncio
import json
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from auditchain.core.crypto.hash_chain import is_chain_hash
from auditchain.core.logging import configure_logging
from auditchain.db.session import close_db, init_db, verification_session
from auditchain.modules.audit.service import AuditChainService


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Verify audit hash-chain integrity.")
    parser.add_argument(
        "--partition-key",
        help="Single partition to verify. Omit when using --all-partitions.",
    )
    parser.add_argument(
        "--all-partitions",
        action="store_true",
        help="Verify every partition that has audit events.",
    )
    parser.add_argument(
        "--start-index",
        type=int,
        default=0,
        help="Resume position within --partition-key (requires --prior-chain-hash).",
    )
    parser.add_argument(
        "--prior-chain-hash",
        default=None,
        help="Trusted chain_hash of the event before --start-index.",
    )
    args = parser.parse_args(argv)
    if not args.partition_key and not args.all_partitions:
        parser.error("Provide --partition-key or --all-partitions")
    if args.all_partitions and (args.start_index or args.prior_chain_hash):
        parser.error("--start-index/--prior-chain-hash require a single --partition-key")
    if args.start_index < 0:
        parser.error("--start-index must be >= 0")
    if args.start_index > 0 and args.prior_chain_hash is None:
        parser.error("--start-index requires --prior-chain-hash")
    if args.prior_chain_hash is not None and not is_chain_hash(args.prior_chain_hash):
        parser.error("--prior-chain-hash must be a 64-character hex SHA-256 digest")
    return args


async def verify_partitions(
    session: AsyncSession,
    partition_keys: Sequence[str] | None = None,
    *,
    start_index: int = 0,
    prior_chain_hash: str | None = None,
) -> list[dict[str, Any]]:
    """Verify the given partitions (all stored partitions when ``None``)."""
    service = AuditChainService(session)
    keys = list(partition_keys) if partition_keys is not None else await service.list_partitions()

    reports: list[dict[str, Any]] = []
    for partition_key in keys:
        result = await service.verify_partition(
            partition_key,
            start_index=start_index,
            prior_chain_hash=prior_chain_hash,
        )
        reports.append(
            {
                "partition_key": partition_key,
                "is_valid": result.is_valid,
                "verified_count": result.verified_count,
                "first_break_at": result.first_break_at,
                "failure": result.failure.value if result.failure else None,
                "errors": list(result.errors),
                "last_chain_hash": result.last_chain_hash,
            }
        )
    return reports


async def _main() -> int:
    args = _parse_args()
    configure_logging()
    await init_db()
    try:
        async with verification_session() as session:
            reports = await verify_partitions(
                session,
                [args.partition_key] if args.partition_key else None,
                start_index=args.start_index,
                prior_chain_hash=args.prior_chain_hash,
            )
    finally:
        await close_db()

    broken = [report for report in reports if not report["is_valid"]]
    summary = {
        "status": "fail" if broken else "pass",
        "checked_at": datetime.now(UTC).isoformat(),
        "partition_count": len(reports),
        "broken_count": len(broken),
        "partitions": reports,
    }
    print(json.dumps(summary, indent=2))
    return 1 if broken else 0


if __name__ == "__main__":
    raise SystemExit(asyncio.run(_main()))

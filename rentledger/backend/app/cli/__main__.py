# backend/app/cli/__main__.py
from __future__ import annotations

import argparse
import json
from datetime import date

from app.logging_config import configure_logging
from app.services.jobs import JOBS


def main() -> None:
    p = argparse.ArgumentParser(prog="python -m app.cli")
    p.add_argument("job", choices=sorted(JOBS))
    p.add_argument("--year", type=int, default=None)
    p.add_argument("--month", type=int, default=None)
    p.add_argument("--today", type=date.fromisoformat, default=None, help="as-of date (YYYY-MM-DD)")
    args = p.parse_args()

    configure_logging()

    if args.job in ("generate", "utilities"):
        out = JOBS[args.job](year=args.year, month=args.month)
    else:
        out = JOBS[args.job](today=args.today)
    print(json.dumps(out, indent=2, default=str))


if __name__ == "__main__":
    main()

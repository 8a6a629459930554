#!/usr/bin/env python3
"""
Create the EventMix database schema

Safe to run repeatedly: every table and index is created only if missing.

Examples:
    python scripts/init_db.py
    python scripts/init_db.py --database-url postgresql://localhost/eventmix
"""

from script_base import ScriptBase, run_script

from event_store import SCHEMA_SQL


def main():
    script = ScriptBase(
        name="init_db",
        description="Create the EventMix database schema",
    )
    script.add_dry_run_arg()
    script.add_debug_arg()
    args = script.parse_args()

    script.print_header({"DRY RUN": args.dry_run})

    if args.dry_run:
        script.logger.info(SCHEMA_SQL)
        return True

    with script.open_store() as store:
        store.init_schema()

    script.print_summary({'schema': 'ready'})
    return True


if __name__ == "__main__":
    run_script(main)

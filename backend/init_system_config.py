"""
Seed the default system configuration.

Run from the backend dir:
    python3 init_system_config.py

Existing keys are left untouched. Entries are attributed to the system
service account.
"""
from sqlmodel import Session

from app.core.db import engine, init_db
from app.services.system_config_service import (
    get_system_user_id,
    list_configs,
    seed_default_configs,
)


def initialize_system_config(session: Session) -> int:
    system_user_id = get_system_user_id(session)
    created = seed_default_configs(session, updated_by=system_user_id)

    print(f"System configuration initialized, created {created} configs")
    print("Current system configuration:")
    for config in list_configs(session, include_inactive=True):
        state = "" if config.is_active else " [inactive]"
        print(f"  - {config.key}: {config.value!r} ({config.category}){state}")
    return created


def main():
    init_db()
    with Session(engine) as session:
        initialize_system_config(session)


if __name__ == "__main__":
    main()

"""
Enable or disable the emailed 2FA step at login.

Run from the backend dir:
    python3 toggle_2fa.py enable
    python3 toggle_2fa.py disable
"""
import sys

from sqlmodel import Session

from app.core.db import engine, init_db
from app.services.system_config_service import (
    get_system_user_id,
    is_two_factor_enabled_for_login,
    set_two_factor_enabled_for_login,
)

USAGE = "usage: toggle_2fa.py enable|disable"


def toggle_2fa(session: Session, enabled: bool) -> bool:
    set_two_factor_enabled_for_login(session, enabled, updated_by=get_system_user_id(session))
    current = is_two_factor_enabled_for_login(session)
    print(f"2FA enabled for login: {current}")
    return current


def main(argv=None) -> int:
    args = sys.argv[1:] if argv is None else argv
    if len(args) != 1 or args[0] not in ("enable", "disable"):
        print(USAGE)
        return 2

    init_db()
    with Session(engine) as session:
        toggle_2fa(session, args[0] == "enable")
    return 0


if __name__ == "__main__":
    sys.exit(main())

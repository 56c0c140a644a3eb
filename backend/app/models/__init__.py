from .user import User, UserRead, UserRole
from .system_config import SystemConfig, SystemConfigRead, SystemConfigUpdate, ConfigValue
from .two_factor_code import TwoFactorCode, TwoFactorPurpose
from .login_session import LoginSession
from .operation_log import OperationLog
from .token import TokenPayload

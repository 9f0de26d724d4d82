"""Database models — re-exports all models.

Import from here:  from renewal_risk.models import Account, Estimate, ...
Or from submodules: from renewal_risk.models.crm import Account
"""

from .base import Base  # noqa: F401

# Users
from .auth import User  # noqa: F401

# CRM: Accounts, Estimates, Interactions, Tasks
from .crm import Account, Estimate, Interaction, Task  # noqa: F401

# Notifications
from .notifications import (  # noqa: F401
    Notification,
    NotificationSnooze,
    UserNotificationState,
)

# Cache
from .cache import NotificationCache  # noqa: F401

# Session hook: estimate/account/interaction writes invalidate cached risk
from ..cache import invalidation  # noqa: F401,E402

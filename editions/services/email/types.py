from enum import Enum


class EmailType(str, Enum):
    PREORDER_CONFIRMATION = "PREORDER_CONFIRMATION"
    SUBSCRIPTION_STARTED = "SUBSCRIPTION_STARTED"
    SUBSCRIPTION_RENEWED = "SUBSCRIPTION_RENEWED"
    NEW_EDITION_RELEASED = "NEW_EDITION_RELEASED"


class AdminEmailType(str, Enum):
    # values share the template table with EmailType, hence the prefix
    NEW_PREORDER = "ADMIN_NEW_PREORDER"
    SUBSCRIPTION_STARTED = "ADMIN_SUBSCRIPTION_STARTED"
    SUBSCRIPTION_RENEWED = "ADMIN_SUBSCRIPTION_RENEWED"

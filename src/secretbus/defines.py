"""Protocol constants for the freedesktop.org Secret Service API.

These constants must match the D-Bus API exactly. They are grouped into
namespaces the same way the remote interfaces are grouped.
"""

from __future__ import annotations

BUS_NAME = "org.freedesktop.secrets"
SERVICE_PATH = "/org/freedesktop/secrets"
DEFAULT_COLLECTION = SERVICE_PATH + "/aliases/default"
SESSION_COLLECTION = SERVICE_PATH + "/collection/session"

# The null object path.
NULL_PATH = "/"

# Returned in place of a prompt path when no confirmation is required.
NO_PROMPT = NULL_PATH

_PREFIX = "org.freedesktop.Secret."

SERVICE_INTERFACE = _PREFIX + "Service"
COLLECTION_INTERFACE = _PREFIX + "Collection"
ITEM_INTERFACE = _PREFIX + "Item"
SESSION_INTERFACE = _PREFIX + "Session"
PROMPT_INTERFACE = _PREFIX + "Prompt"

ALGORITHM_PLAIN = "plain"
# Recognised but not implemented.
ALGORITHM_DH = "dh-ietf1024-sha256-aes128-cbc-pkcs7"


class ServiceMethod:
    """Methods of org.freedesktop.Secret.Service."""

    OPEN_SESSION = "OpenSession"
    CREATE_COLLECTION = "CreateCollection"
    SEARCH_ITEMS = "SearchItems"
    UNLOCK = "Unlock"
    LOCK = "Lock"
    GET_SECRETS = "GetSecrets"
    READ_ALIAS = "ReadAlias"
    SET_ALIAS = "SetAlias"

    # Properties
    COLLECTIONS = "Collections"


class CollectionMethod:
    """Methods and properties of org.freedesktop.Secret.Collection."""

    DELETE = "Delete"
    SEARCH_ITEMS = "SearchItems"
    CREATE_ITEM = "CreateItem"

    # Properties
    LABEL = "Label"
    LOCKED = "Locked"
    ITEMS = "Items"
    CREATED = "Created"
    MODIFIED = "Modified"


class ItemMethod:
    """Methods and properties of org.freedesktop.Secret.Item."""

    DELETE = "Delete"
    GET_SECRET = "GetSecret"
    SET_SECRET = "SetSecret"

    # Properties
    LOCKED = "Locked"
    ATTRIBUTES = "Attributes"
    LABEL = "Label"
    CREATED = "Created"
    MODIFIED = "Modified"


class SessionMethod:
    CLOSE = "Close"


class PromptMethod:
    PROMPT = "Prompt"
    DISMISS = "Dismiss"

    # Signals
    COMPLETED = "Completed"


class DBusError:
    """D-Bus error names the service is known to return."""

    UNKNOWN_METHOD = "org.freedesktop.DBus.Error.UnknownMethod"
    ACCESS_DENIED = "org.freedesktop.DBus.Error.AccessDenied"
    SERVICE_UNKNOWN = "org.freedesktop.DBus.Error.ServiceUnknown"
    NO_REPLY = "org.freedesktop.DBus.Error.NoReply"
    NOT_SUPPORTED = "org.freedesktop.DBus.Error.NotSupported"
    NO_SUCH_OBJECT = "org.freedesktop.Secret.Error.NoSuchObject"
    IS_LOCKED = "org.freedesktop.Secret.Error.IsLocked"
    NO_SESSION = "org.freedesktop.Secret.Error.NoSession"

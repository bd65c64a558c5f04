"""pyButtonPlatform - virtual buttons triggered by HTTP notifications."""

__version__ = "0.1.0"

from pyButtonPlatform.enums import PressKind  # noqa: F401,E402 – re-export

from pyButtonPlatform.events import (  # noqa: F401,E402
    ACCEPTED_EVENTS,
    ButtonEventName,
    classify_event,
)

from pyButtonPlatform.routes import (  # noqa: F401,E402
    ROUTE_PREFIX,
    route_for,
    slugify,
)

from pyButtonPlatform.config import (  # noqa: F401,E402
    DEFAULT_PORT,
    ConfigurationError,
    PlatformConfig,
    load_config,
)

from pyButtonPlatform.persistence import (  # noqa: F401,E402
    CACHE_ROOT_KEY,
    AccessoryStore,
    CachedAccessory,
)

from pyButtonPlatform.accessory import (  # noqa: F401,E402
    ACCESSORY_CLASS_NAME,
    ButtonAccessory,
    StatelessProgrammableSwitch,
)

from pyButtonPlatform.http_api import ButtonDispatcher  # noqa: F401,E402

from pyButtonPlatform.button_platform import ButtonPlatform  # noqa: F401,E402

"""Internal constants shared across the daemon and its clients."""

DEFAULT_PREPROCESSOR = "/usr/bin/cpp"
SERVICE_NAME = "org.regolith.Trawl"
OBJECT_PATH = "/org/regolith/Trawl"
INTERFACE_NAME = "org.regolith.trawl1"
SIGNAL_RESOURCES_CHANGED = "ResourcesChanged"
PROPERTY_RESOURCES = "Resources"

# ------------------------------------------------------------------
# Daemon profiles (preprocessor location differs between distributions)
# ------------------------------------------------------------------

PROFILE_PREPROCESSORS: dict[str, str] = {
    "default": "/run/current-system/sw/bin/cpp",
    "legacy": DEFAULT_PREPROCESSOR,
}

# Characters allowed in a resource key besides ASCII letters and digits.
KEY_EXTRA_CHARS: frozenset[str] = frozenset({"-", ".", "_"})

QUERY_SEPARATOR = " :\t"

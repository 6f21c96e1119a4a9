"""Ship reconciler, captain and conscript services, and the trig and weather targets that drive them."""

__version__ = "0.1.0"

__all__ = [
    "spec",
    "trig",
    "openweather",
    "resources",
    "httplog",
    "controller",
    "captain",
    "conscript",
    "cli",
]
"""Trigger input sources."""
from .button import PressedProvider, SideButton, TriggerCallback, sysfs_gpio_provider

__all__ = ["PressedProvider", "SideButton", "TriggerCallback", "sysfs_gpio_provider"]

from src.notifications.telegram import Notifier, TelegramNotifier, format_price_alert

__all__ = [
    "Notifier",
    "TelegramNotifier",
    "format_price_alert",
]

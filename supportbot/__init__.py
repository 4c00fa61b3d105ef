"""Shop support relay - Telegram bot, widget relay and notification sweeps."""

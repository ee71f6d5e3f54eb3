"""Telegram ⇄ Voiceflow delivery bridge."""

"""Pacote system: diretórios de logs, escrita segura e journal de eventos."""

from .log_helpers import write_text, write_json
from .logs import attach_journal, journal_event

__all__ = ["write_text", "write_json", "attach_journal", "journal_event"]

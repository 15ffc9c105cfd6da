"""Pacote config: configurações carregadas de .env e do ambiente."""

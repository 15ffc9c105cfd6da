"""Parser de argumentos do monitor de console.

Este módulo fornece um parser simples que expõe:
- intervalo entre ticks em milissegundos (-i / --interval)
- número de ciclos (-c / --cycles), 0 = infinito
- verbosidade (-v)
- opções de logging (nível e caminho raiz)
- simulação de páginas (--simulate N)

As funções retornam objetos compatíveis com argparse.Namespace para serem
consumidos por `pagestatus.main`. Prioridade: CLI > ENV > default.
"""

import argparse
import logging
import os
from typing import Sequence

from ..config.settings import DEFAULT_REFRESH_INTERVAL_MS

# ========================
# 0. Configuração do parser e argumentos padrão
# ========================


# Função principal do módulo; cria e retorna o ArgumentParser configurado
def configure_argparser() -> argparse.ArgumentParser:
    """Cria e retorna ArgumentParser configurado para o monitor."""
    parser = argparse.ArgumentParser(
        prog="pagestatus",
        description="Monitor de status de páginas: agregação, seleção e histórico de eventos",
    )

    parser.add_argument(
        "-i",
        "--interval",
        type=float,
        default=None,
        help=f"Intervalo em milissegundos entre ticks (float, > 0). Se ausente, usa PAGESTATUS_REFRESH_INTERVAL_MS ou {DEFAULT_REFRESH_INTERVAL_MS}",
    )
    parser.add_argument(
        "-c",
        "--cycles",
        type=int,
        default=0,
        help="Número de ciclos a executar (0 = infinito)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Aumenta a verbosidade (-v, -vv)",
    )
    parser.add_argument(
        "--log-root",
        dest="log_root",
        type=str,
        default=None,
        help="Caminho raiz para os logs (substitui PAGESTATUS_LOG_ROOT)",
    )
    parser.add_argument(
        "--log-level",
        dest="log_level",
        type=str,
        default=None,
        help="Nível de logging (DEBUG/INFO/WARNING/ERROR). Se ausente, definido por -v ou PAGESTATUS_LOG_LEVEL",
    )
    parser.add_argument(
        "--simulate",
        type=int,
        default=0,
        metavar="N",
        help="Simula N páginas por categoria com um produtor em segundo plano",
    )

    return parser


# ========================
# 1. Funções auxiliares para análise e validação de argumentos
# ========================


# Auxilia pagestatus.main; criado para analisar argv e validar argumentos
def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Analisa argv e retorna Namespace validado para uso no programa."""
    parser = configure_argparser()
    ns = parser.parse_args(argv)
    env_map = {
        "interval": "PAGESTATUS_REFRESH_INTERVAL_MS",
        "cycles": "PAGESTATUS_CYCLES",
        "verbose": "PAGESTATUS_VERBOSE",
        "log_root": "PAGESTATUS_LOG_ROOT",
        "log_level": "PAGESTATUS_LOG_LEVEL",
    }

    # Overrides via ambiente SOMENTE quando o argumento não veio da CLI
    for arg, env_var in env_map.items():
        env_val = os.getenv(env_var)
        if env_val is None:
            continue
        default_val = parser.get_default(arg)
        current_val = getattr(ns, arg, None)
        if current_val is not None and current_val != default_val:
            continue
        try:
            if arg == "interval":
                setattr(ns, arg, float(env_val))
            elif arg in ("cycles", "verbose"):
                setattr(ns, arg, int(env_val))
            else:
                setattr(ns, arg, env_val)
        except (TypeError, ValueError) as exc:
            logging.getLogger(__name__).warning(
                "%s inválido ('%s'): %s. Usando valor do argumento.", env_var, env_val, exc
            )
    validate_args(ns)
    return ns


# Auxilia parse_args; criado para garantir valores corretos e seguros
def validate_args(args: argparse.Namespace) -> None:
    """Valida e normaliza argumentos do monitor.

    ``interval`` ausente (None) fica a cargo das configurações.
    """
    if args.interval is not None:
        try:
            args.interval = float(args.interval)
        except (TypeError, ValueError) as exc:
            raise ValueError("intervalo deve ser um número") from exc
        if args.interval <= 0.0:
            raise ValueError("intervalo deve ser > 0")

    try:
        args.cycles = int(args.cycles)
    except (TypeError, ValueError) as exc:
        raise ValueError("cycles deve ser um inteiro >= 0") from exc
    if args.cycles < 0:
        raise ValueError("cycles deve ser >= 0")

    simulate = getattr(args, "simulate", 0) or 0
    if int(simulate) < 0:
        raise ValueError("simulate deve ser >= 0")
    args.simulate = int(simulate)


# ========================
# 2. Função auxiliar para configuração de logging
# ========================


# Auxilia pagestatus.main; criado para extrair configuração de logging dos argumentos
def get_log_config(args: argparse.Namespace, settings: dict | None = None) -> dict:
    """Retorna dict com configuração de logging ('level' e 'root').

    Prioridade do nível: ``--log-level`` > ``-v`` > ``settings["log_level"]`` > WARNING.
    """
    v = getattr(args, "verbose", 0) or 0
    if getattr(args, "log_level", None):
        level = str(args.log_level).upper()
    elif v >= 2:
        level = "DEBUG"
    elif v >= 1:
        level = "INFO"
    elif settings and settings.get("log_level"):
        level = str(settings["log_level"]).upper()
    else:
        level = "WARNING"

    return {"level": level, "root": getattr(args, "log_root", None)}

# wms_operaciones/config.py
"""
Configuración leída del entorno (.env soportado vía python-dotenv).
"""

import os
from dotenv import load_dotenv

load_dotenv()

DATABASE_URL = os.environ.get("DATABASE_URL")
DB_POOL_MIN = int(os.environ.get("DB_POOL_MIN", "1"))
DB_POOL_MAX = int(os.environ.get("DB_POOL_MAX", "10"))

# Tablero Kanban: solo las últimas N completadas viajan al frontend
KANBAN_LIMITE_COMPLETADAS = int(os.environ.get("KANBAN_LIMITE_COMPLETADAS", "10"))

# Ventana de throughput (días hacia atrás, incluyendo hoy)
THROUGHPUT_DIAS = int(os.environ.get("THROUGHPUT_DIAS", "7"))

SECRET_KEY = os.environ.get("SECRET_KEY", "tu_super_secreto_por_defecto_cambia_esto")
JWT_ALGORITHM = os.environ.get("JWT_ALGORITHM", "HS256")

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

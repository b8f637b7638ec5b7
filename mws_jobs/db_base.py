"""
Declarative base shared by every mapped class in mws_jobs.

Kept free of model imports so models, stores and the session module can
all import it without cycles.
"""

from sqlalchemy.orm import declarative_base

Base = declarative_base()

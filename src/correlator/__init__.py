"""
Correlator

Schema-validated entities and PostgreSQL repositories for correlation
discovery between datasets.
"""

"""Suivi des lots de reconditionnement: API, rendu PDF et poste de réception."""

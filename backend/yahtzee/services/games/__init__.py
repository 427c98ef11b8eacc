"""Game domain services: scoring, turn order, dice rounds, match lifecycle.

Routes and socket handlers reach these through ``get_services()``; the
modules here never touch requests or sockets.
"""

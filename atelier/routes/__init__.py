# ==== ROUTES PACKAGE ==== #

"""
Routes package for API endpoints.

Health and metrics, manual job triggers, the WhatsApp webhook and the
operator order-event endpoint.
"""

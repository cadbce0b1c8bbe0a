# ==== SERVICES PACKAGE ==== #

"""
Services package for the fulfillment jobs and handlers.

Contains the escalation scheduler, the carrier reconciliation job, the
confirmation correlator and the shared order transition service, all of
which receive their adapters through constructor injection.
"""

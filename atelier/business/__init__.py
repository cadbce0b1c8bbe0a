# ==== BUSINESS LOGIC PACKAGE ==== #

"""
Business logic package for the order lifecycle.

Pure components only: the status vocabulary, the label codec and the
order state machine. Nothing in this package performs I/O.
"""

from atelier.cli.jobs import fulfillment

fulfillment(prog_name="atelier")

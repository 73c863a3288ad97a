""" Service layer: every mutation of invoices, stock, balances
    and the journal goes through these modules. """

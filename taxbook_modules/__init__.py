"""
taxbook_modules -- business modules built on the kernel.

    reporting   financial statements from ledger balances
    tax         tax computation and the tax return lifecycle
    receipts    receipt recognition, classification and posting

Modules may import from taxbook_kernel, taxbook_engines and
taxbook_config.  They never import taxbook_services.
"""

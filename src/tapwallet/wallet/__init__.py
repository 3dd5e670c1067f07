"""
Keys, coin selection, the colored coin protocol and transaction assembly.
"""

"""
LEGAL DISCLAIMERS
=================

This software is provided for EDUCATIONAL and INFORMATIONAL purposes ONLY.

• It does NOT provide financial, investment, or trading advice
• It never holds, stores, or requests private keys
• It never signs or broadcasts transactions
• Simulated transactions must be reviewed before signing them elsewhere
"""

CLI_DISCLAIMER = (
    "⚠️ WARNING: Educational tool, NOT financial advice. "
    "Withdrawal previews are simulations; verify every field before signing."
)

TRANSACTION_WARNING = """
⚠️ UNSIGNED TRANSACTION PREVIEW
• Built by the Uniswap Trading API in simulation mode
• This tool does not sign or broadcast it
• Check 'to' is the PositionManager of the selected chain
• Check 'from' is YOUR wallet before signing in your own wallet
"""

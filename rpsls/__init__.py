"""
RPSLS - Commit-reveal Rock-Paper-Scissors-Lizard-Spock client.

Two parties wager on a five-move game without a trusted referee.
The authoritative ledger holds the stakes and verifies reveals; this
package is the participant's client. It provides:
- Move algebra and the commitment scheme
- A guarded per-game state machine
- A durable local store of tracked games
- A reconciliation engine that keeps the store in step with the ledger
"""

__version__ = "0.1.0"

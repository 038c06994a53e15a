"""
raffle.adapters
===============

Collaborators the raffle core talks to through narrow interfaces:

- provider  - RandomnessProvider / RandomnessConsumer protocols
- vrf_mock  - subscription-based coordinator mock for local networks
- beacon    - provider answering from the chain randomness beacon
- treasury  - in-memory balances, escrow pay-ins and payouts
"""

"""
Customer Management module.

- Customer intake: one customer plus one or more motorcycle units per submit
- Recent customers listing
"""

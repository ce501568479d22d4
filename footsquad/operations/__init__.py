"""
Operations Layer

Business rules for match coordination, composed on top of the database
layer. Every match-mutating operation runs under the match's lock inside a
single transaction and publishes its notifications after commit.

Each operations module owns one part of the match:
- MatchOperations: creation, opponent proposals, cancellation, detail view
- RosterOperations: join requests and captain decisions
- ScoreOperations: two-captain score agreement
- RatingOperations: budgeted opponent ratings and trimmed averages
- MotmOperations: Man-of-the-Match voting and finalization
"""

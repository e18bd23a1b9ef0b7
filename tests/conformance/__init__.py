"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the stablecoin engine.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. atomicity.py - Failed operations leave no trace; no re-entry
2. invariants.py - Backing, supply and custody hold across random operation sequences
3. conversion.py - USD/token conversion rounds toward the protocol
4. monotonicity.py - Health factor moves the right way with collateral, debt and price

These tests use hypothesis for property-based testing.
"""

"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the vault.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. conservation.py - Double-entry accounting across vault actions
2. atomicity.py - All-or-nothing vault actions
3. reentrancy.py - Ordering under nested custody callbacks
4. timelock_properties.py - Sorted, disjoint lock lists; transfers keep locked totals
5. vault_properties.py - Fee schedule, yield, previews and pause behaviour

These tests use hypothesis for property-based testing.
"""

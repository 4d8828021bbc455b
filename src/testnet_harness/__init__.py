"""
Test harness for multi-node blockchain networks.

Builds a trust topology of nodes, launches and supervises each node process,
submits fragments and checks that they converge, measures synchronization
time, and provides a scriptable mock peer for protocol-conformance tests.
"""

"""
Tests for the design optimization package.

Test modules:
- test_flatten: Design flattening and unflattening
- test_parameters: Parameter record, tying, fixing and categories
- test_objective: Objective adapter and sanitizing
- test_efficiency: Efficiency and stopping criteria
- test_ars: Adaptive random search
- test_line_search: Coordinate line search
- test_methods: Method parsing and solver dispatch
- test_driver: End-to-end optimization runs
"""

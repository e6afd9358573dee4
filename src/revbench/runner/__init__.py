"""Job execution (placeholders, usage probe, child processes).

Modules:
    - commands: placeholder substitution and command splitting
    - usage: usage probe report parsing
    - process: run one job and capture its JobOutcome
"""

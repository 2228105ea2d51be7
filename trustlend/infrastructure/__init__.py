"""Infrastructure — ledger access, clocks, repositories, and logging."""

# Domain models and business rules for SellMate

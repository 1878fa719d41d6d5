# Fees module

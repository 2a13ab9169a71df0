"""Travel domain - address normalization, the travel-pair cache and route estimation"""

"""Schedule insights domain - rule findings, enhancement and review workflow"""

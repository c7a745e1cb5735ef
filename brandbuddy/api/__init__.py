"""HTTP routers, one per page"""

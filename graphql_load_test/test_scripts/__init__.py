"""压测场景脚本"""

"""
concierge - 酒店宾客服务平台后端

宾客通过酒店门户预订洗衣、接送、水疗、餐饮等服务；
酒店管理员管理服务商与加价；服务商履约；超级管理员管理全平台。
"""
__version__ = "1.0.0"

"""
concierge_core - 与具体业务无关的基础设施层

- engine: 进程内事件总线
- notification: 通知渠道接口与注册表
- scheduler: 定时任务后端接口与注册表
- payments: 支付网关接口与注册表

app 层（concierge）负责提供具体实现并在 lifespan 中注册。
"""

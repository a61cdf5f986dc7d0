"""
Schemas package

本包保持“安静”：
- 不做聚合导出，避免隐式导入引发的循环依赖。
- 需要使用时请**显式**从具体模块导入，例如：
    from wmsgrn.schemas.inbound import InboundOut
    from wmsgrn.schemas.inbound_verify import InboundVerifyIn
"""

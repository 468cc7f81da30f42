"""material-validator：AI 生成课程资料的校验服务"""

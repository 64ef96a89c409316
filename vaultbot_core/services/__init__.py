"""建立在 Provider 之上的服务：模型目录缓存与标题生成。"""

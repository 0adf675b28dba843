"""
服務層

這個 package 包含純計算邏輯，不持有狀態：
- IdService：識別碼生成
- SnapshotService：快照與事件 payload 序列化
- TeamService：邊界層的團隊解析
"""

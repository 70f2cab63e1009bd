from flask_sqlalchemy import SQLAlchemy
from datetime import datetime

db = SQLAlchemy()

# ============================================
# 1. 多對多關聯表：團隊與成員
# ============================================
team_members = db.Table('team_members',
    db.Column('team_id', db.Integer, db.ForeignKey('team.id'), primary_key=True),
    db.Column('user_id', db.Integer, db.ForeignKey('user.id'), primary_key=True),
    db.Column('joined_at', db.DateTime, default=datetime.utcnow)
)

# ============================================
# 2. User 模型
# ============================================
class User(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(225), nullable=False)
    role = db.Column(db.String(20), nullable=False, default='member')  # manager or member
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    # 關聯
    managed_teams = db.relationship('Team', backref='manager', lazy=True)
    tasks_assigned = db.relationship('Task', foreign_keys='Task.assigned_to', backref='assignee', lazy=True)
    tasks_created = db.relationship('Task', foreign_keys='Task.created_by', backref='creator', lazy=True)
    bugs_reported = db.relationship('Task', foreign_keys='Task.bug_reported_by', backref='bug_reporter', lazy=True)

# ============================================
# 3. Team 模型
# ============================================
class Team(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    manager_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    # 關聯 (manager 建立時就會加入 members)
    members = db.relationship('User', secondary=team_members, lazy='selectin',
                              backref=db.backref('teams', lazy=True))
    tasks = db.relationship('Task', backref='team', lazy=True, cascade='all,delete-orphan')

    __table_args__ = (
        db.Index('idx_team_manager', 'manager_id'),
    )

    def has_member(self, user_id):
        return any(member.id == user_id for member in self.members)

# ============================================
# 4. Task 模型
# ============================================
class Task(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(255), nullable=False)
    content = db.Column(db.Text, nullable=True)  # rich text (HTML),原樣儲存
    images = db.Column(db.JSON, nullable=False, default=list)
    status = db.Column(db.String(20), nullable=False, default='todo')  # todo, in-progress, in-review, done
    priority = db.Column(db.String(20), nullable=False, default='medium')  # low, medium, high

    # 關聯欄位
    team_id = db.Column(db.Integer, db.ForeignKey('team.id'), nullable=False)
    assigned_to = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=True)
    created_by = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)

    # Bug 欄位: 三個欄位必須同時存在或同時為空
    is_bugged = db.Column(db.Boolean, nullable=False, default=False)
    bug_reason = db.Column(db.Text, nullable=True)
    bug_reported_by = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=True)
    bug_reported_at = db.Column(db.DateTime, nullable=True)

    # 時間欄位
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # 索引
    __table_args__ = (
        db.Index('idx_task_team_created', 'team_id', 'created_at'),
        db.Index('idx_task_assigned_created', 'assigned_to', 'created_at'),
        db.Index('idx_task_created_by', 'created_by'),
        db.Index('idx_task_status', 'status'),
        db.Index('idx_task_is_bugged', 'is_bugged'),
    )
